"""
Curriculum Storage and Lookup

Curriculum items are short reference documents tagged with topic keys and
grades. They live either in a `curriculum.json` document:

    {"version": 1, "lastUpdated": "...", "items": [...]}

or in the Supabase `curriculum` table. The fetcher turns the items matching a
topic and grade into a single reference block for the system prompt.
"""

import os
import json
import time
import uuid
import asyncio
import logging
from pathlib import Path
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MAX_CURRICULUM_CHARS = 8000
TRUNCATION_MARKER = "\n[...truncated]"
EXPORT_VERSION = 1
DEFAULT_CURRICULUM_PATH = "data/curriculum.json"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_item_id() -> str:
    return f"curr_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


@dataclass
class CurriculumItem:
    """One curriculum document."""
    id: str
    title: str
    content: str
    topics: List[str] = field(default_factory=list)
    grades: List[int] = field(default_factory=list)
    is_active: bool = True
    content_type: str = "text"  # "text" or "pdf"
    pdf_file_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def matches(self, topic_key: str, grade: int) -> bool:
        return self.is_active and topic_key in self.topics and grade in self.grades

    def render(self) -> str:
        return f"\n--- {self.title} ---\n{self.content}\n"

    def to_dict(self) -> Dict[str, Any]:
        """camelCase form used in curriculum.json."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "contentType": self.content_type,
            "pdfFileName": self.pdf_file_name,
            "topics": list(self.topics),
            "grades": list(self.grades),
            "isActive": self.is_active,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurriculumItem":
        return cls(
            id=str(data.get("id") or new_item_id()),
            title=data.get("title") or "",
            content=data.get("content") or "",
            topics=list(data.get("topics") or []),
            grades=[int(g) for g in (data.get("grades") or [])],
            # Items without the flag count as active
            is_active=data.get("isActive", True) is not False,
            content_type=data.get("contentType") or "text",
            pdf_file_name=data.get("pdfFileName"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_row(self) -> Dict[str, Any]:
        """snake_case form used by the database table."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "content_type": self.content_type,
            "pdf_file_name": self.pdf_file_name,
            "topics": list(self.topics),
            "grades": list(self.grades),
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CurriculumItem":
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            content=row.get("content") or "",
            topics=list(row.get("topics") or []),
            grades=[int(g) for g in (row.get("grades") or [])],
            is_active=row.get("is_active", True) is not False,
            content_type=row.get("content_type") or "text",
            pdf_file_name=row.get("pdf_file_name"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


def build_export_document(items: Iterable[CurriculumItem]) -> Dict[str, Any]:
    return {
        "version": EXPORT_VERSION,
        "lastUpdated": utc_now_iso(),
        "items": [item.to_dict() for item in items],
    }


class CurriculumStore:
    """Async load/save of the full item list."""

    async def load_items(self) -> List[CurriculumItem]:
        raise NotImplementedError

    async def save_items(self, items: List[CurriculumItem]) -> None:
        raise NotImplementedError


class JsonCurriculumStore(CurriculumStore):
    """Items kept in a curriculum.json file. A missing file is an empty store."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.getenv("CURRICULUM_JSON_PATH", DEFAULT_CURRICULUM_PATH))

    def _read(self) -> List[CurriculumItem]:
        if not self.path.exists():
            logger.info(f"📚 [Curriculum] No {self.path} found, starting with no items")
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [CurriculumItem.from_dict(d) for d in data.get("items", [])]

    def _write(self, items: List[CurriculumItem]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(build_export_document(items), f, indent=2, ensure_ascii=False)

    async def load_items(self) -> List[CurriculumItem]:
        return await asyncio.to_thread(self._read)

    async def save_items(self, items: List[CurriculumItem]) -> None:
        await asyncio.to_thread(self._write, items)
        logger.info(f"💾 [Curriculum] Saved {len(items)} items to {self.path}")


class SupabaseCurriculumStore(CurriculumStore):
    """Items kept in a Supabase table."""

    def __init__(self, supabase_client, table: str = "curriculum"):
        self.supabase = supabase_client
        self.table = table

    async def load_items(self) -> List[CurriculumItem]:
        result = self.supabase.table(self.table).select("*").execute()
        return [CurriculumItem.from_row(row) for row in (result.data or [])]

    async def save_items(self, items: List[CurriculumItem]) -> None:
        if not items:
            return
        self.supabase.table(self.table).upsert([item.to_row() for item in items]).execute()
        logger.info(f"💾 [Curriculum] Upserted {len(items)} items into {self.table}")


class InMemoryCurriculumStore(CurriculumStore):
    def __init__(self, items: Optional[Iterable[CurriculumItem]] = None):
        self.items: List[CurriculumItem] = list(items or [])

    async def load_items(self) -> List[CurriculumItem]:
        return list(self.items)

    async def save_items(self, items: List[CurriculumItem]) -> None:
        self.items = list(items)


def truncate_curriculum(text: str, limit: int = MAX_CURRICULUM_CHARS) -> str:
    """Cut to exactly `limit` characters plus the truncation marker."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def render_matching(items: Iterable[CurriculumItem], topic_key: str, grade: int) -> str:
    matched = [item for item in items if item.matches(topic_key, grade)]
    logger.info(f"📚 [Curriculum] {len(matched)} documents match topic={topic_key}, grade={grade}")
    combined = "".join(item.render() for item in matched).strip()
    return truncate_curriculum(combined)


class CurriculumFetcher:
    """
    Looks up reference material for a topic and grade.

    Lookup failures are soft: they are logged and produce an empty string so a
    session can still start without curriculum.
    """

    def __init__(self, store: CurriculumStore):
        self.store = store

    async def _load(self) -> Optional[List[CurriculumItem]]:
        try:
            return await self.store.load_items()
        except Exception as e:
            logger.warning(f"⚠️ [Curriculum] Could not load curriculum, continuing without it: {e}")
            return None

    async def fetch(self, topic_key: str, grade: int) -> str:
        items = await self._load()
        if not items:
            return ""
        return render_matching(items, topic_key, grade)

    async def fetch_for_topics(self, topic_keys: Iterable[str], grade: int) -> str:
        """Combined material for several topic keys, each truncated on its own."""
        items = await self._load()
        if not items:
            return ""
        parts = [render_matching(items, key, grade) for key in topic_keys]
        return "\n".join(p for p in parts if p).strip()
