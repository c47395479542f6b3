"""
Curriculum Administration

CRUD over curriculum items plus AI-assisted tagging of new documents with
topic keys and grade levels. Deletes are soft: the item stays in the store
with is_active False and is left out of exports and lookups.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from socratic_science_tutor.curriculum import (
    CurriculumItem,
    CurriculumStore,
    build_export_document,
    new_item_id,
    utc_now_iso,
)
from socratic_science_tutor.errors import CredentialError, ParseError, TransportError
from socratic_science_tutor.prompt_builder import build_auto_tag_prompt
from socratic_science_tutor.response_parser import extract_json_object
from socratic_science_tutor.topics import is_known_topic, topic_keys

logger = logging.getLogger(__name__)

MIN_TAG_GRADE = 5
MAX_TAG_GRADE = 10
AUTO_TAG_MAX_TOKENS = 512
AUTO_TAG_SYSTEM_PROMPT = "You classify science curriculum documents. Respond with JSON only."


class CurriculumItemNotFoundError(KeyError):
    def __str__(self) -> str:
        return Exception.__str__(self)


@dataclass
class AutoTagResult:
    title: str
    topics: List[str] = field(default_factory=list)
    grades: List[int] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "topics": self.topics, "grades": self.grades, "summary": self.summary}


def _valid_grades(raw: Any) -> List[int]:
    grades = []
    for g in raw or []:
        try:
            grade = int(g)
        except (TypeError, ValueError):
            continue
        if MIN_TAG_GRADE <= grade <= MAX_TAG_GRADE and grade not in grades:
            grades.append(grade)
    return grades


class CurriculumAdmin:
    """
    Holds the working list of curriculum items.

    Mutations mark the list dirty; `persist()` writes it back to the store.
    """

    def __init__(self, store: CurriculumStore, gateway=None):
        self.store = store
        self.gateway = gateway
        self.items: List[CurriculumItem] = []
        self.has_unsaved_changes = False

    async def load(self) -> List[CurriculumItem]:
        try:
            self.items = await self.store.load_items()
        except Exception as e:
            logger.error(f"❌ [CurriculumAdmin] Error loading curriculum, starting with empty list: {e}")
            self.items = []
        self.has_unsaved_changes = False
        logger.info(f"📚 [CurriculumAdmin] Loaded {len(self.items)} curriculum items")
        return self.items

    async def persist(self):
        await self.store.save_items(self.items)
        self.has_unsaved_changes = False

    def get_item(self, item_id: str) -> CurriculumItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise CurriculumItemNotFoundError(f"Curriculum item not found: {item_id}")

    def list_items(self, include_inactive: bool = False) -> List[CurriculumItem]:
        return [i for i in self.items if include_inactive or i.is_active]

    def create_item(
        self,
        title: str,
        content: str,
        topics: Sequence[str],
        grades: Sequence[int],
        content_type: str = "text",
        pdf_file_name: Optional[str] = None
    ) -> CurriculumItem:
        now = utc_now_iso()
        item = CurriculumItem(
            id=new_item_id(),
            title=title,
            content=content,
            topics=list(topics),
            grades=sorted(grades),
            content_type=content_type,
            pdf_file_name=pdf_file_name,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.items.insert(0, item)
        self.has_unsaved_changes = True
        logger.info(f"➕ [CurriculumAdmin] Created item: {item.id} - {item.title}")
        return item

    def update_item(
        self,
        item_id: str,
        title: str,
        content: str,
        topics: Sequence[str],
        grades: Sequence[int],
        content_type: str = "text",
        pdf_file_name: Optional[str] = None
    ) -> CurriculumItem:
        item = self.get_item(item_id)
        item.title = title
        item.content = content
        item.content_type = content_type
        if pdf_file_name is not None:
            item.pdf_file_name = pdf_file_name
        item.topics = list(topics)
        item.grades = sorted(grades)
        item.updated_at = utc_now_iso()
        self.has_unsaved_changes = True
        logger.info(f"✏️ [CurriculumAdmin] Updated item: {item_id}")
        return item

    def delete_item(self, item_id: str) -> CurriculumItem:
        item = self.get_item(item_id)
        item.is_active = False
        item.updated_at = utc_now_iso()
        self.has_unsaved_changes = True
        logger.info(f"🗑️ [CurriculumAdmin] Soft-deleted item: {item_id}")
        return item

    async def auto_tag(self, title: str, content: str) -> Optional[AutoTagResult]:
        """
        Ask the model which topics and grades a document fits.

        Returns None when no gateway is configured or anything goes wrong.
        """
        if self.gateway is None or not self.gateway.has_valid_credentials():
            logger.info("⏭️ [AutoTag] No API key available, skipping auto-analysis")
            return None

        logger.info(f"🏷️ [AutoTag] Analyzing content: title={title!r}, content length={len(content)}")
        messages = [{"role": "user", "content": build_auto_tag_prompt(title, content, topic_keys())}]
        try:
            reply = await self.gateway.complete(
                messages,
                AUTO_TAG_SYSTEM_PROMPT,
                max_tokens=AUTO_TAG_MAX_TOKENS,
                temperature=0,
            )
            analysis = extract_json_object(reply)
        except (CredentialError, TransportError, ParseError) as e:
            logger.error(f"❌ [AutoTag] Error analyzing content: {e}")
            return None

        result = AutoTagResult(
            title=analysis.get("title") or title,
            topics=[t for t in (analysis.get("topics") or []) if isinstance(t, str) and is_known_topic(t)],
            grades=_valid_grades(analysis.get("grades")),
            summary=analysis.get("summary") or "",
        )
        logger.info(f"✅ [AutoTag] topics={result.topics}, grades={result.grades}")
        return result

    async def save_item(
        self,
        title: str,
        content: str,
        topics: Optional[Sequence[str]] = None,
        grades: Optional[Sequence[int]] = None,
        content_type: str = "text",
        pdf_file_name: Optional[str] = None,
        item_id: Optional[str] = None
    ) -> CurriculumItem:
        """
        Validate, auto-tag if needed, then create or update an item.

        Raises:
            ValueError: missing title/content, or no topics/grades even after auto-tagging
            CurriculumItemNotFoundError: item_id does not exist
        """
        title = (title or "").strip()
        content = (content or "").strip()
        topics = list(topics or [])
        grades = list(grades or [])

        if not title:
            raise ValueError("Please enter a title.")
        if not content:
            raise ValueError("Please enter content.")

        if not topics or not grades:
            analysis = await self.auto_tag(title, content)
            if analysis:
                topics = topics or analysis.topics
                grades = grades or analysis.grades

            if not topics:
                raise ValueError("Could not auto-detect topics. Please select at least one topic manually.")
            if not grades:
                raise ValueError("Could not auto-detect grades. Please select at least one grade level manually.")

        if item_id:
            return self.update_item(item_id, title, content, topics, grades, content_type, pdf_file_name)
        return self.create_item(title, content, topics, grades, content_type, pdf_file_name)

    def export_json(self) -> Dict[str, Any]:
        """Export document with active items only."""
        document = build_export_document(self.list_items())
        logger.info(f"📤 [Export] Exported {len(document['items'])} active items")
        return document

    def import_json(self, data: Any) -> int:
        """Replace the working list with an exported document's items."""
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise ValueError("Invalid curriculum JSON: expected an object with an 'items' array")
        self.items = [CurriculumItem.from_dict(d) for d in data["items"] if isinstance(d, dict)]
        self.has_unsaved_changes = True
        logger.info(f"📥 [Import] Imported {len(self.items)} items from JSON")
        return len(self.items)

    def stats(self) -> Dict[str, int]:
        active = self.list_items()
        unique_topics = {t for item in active for t in item.topics}
        return {"total": len(self.items), "active": len(active), "topics": len(unique_topics)}
