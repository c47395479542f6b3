"""
Free-form Topic Discovery

Turns a student's own description of what they want to learn ("why do
volcanoes explode?") into a list of focused sub-topics, each mapped onto one
or two catalog topic keys.
"""

import re
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from socratic_science_tutor.errors import ParseError
from socratic_science_tutor.prompt_builder import build_topic_discovery_prompt, build_topic_discovery_request
from socratic_science_tutor.response_parser import extract_json_object
from socratic_science_tutor.topics import DEFAULT_TOPIC_KEY, SCIENCE_TOPICS, is_known_topic

logger = logging.getLogger(__name__)


def _slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


@dataclass
class SubTopic:
    id: str
    label: str
    description: str = ""
    matched_topic_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "matchedTopicKeys": list(self.matched_topic_keys),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubTopic":
        label = str(data.get("label") or "").strip()
        return cls(
            id=str(data.get("id") or _slugify(label)),
            label=label,
            description=str(data.get("description") or ""),
            matched_topic_keys=[str(k) for k in (data.get("matchedTopicKeys") or [])],
        )


def determine_primary_topic(selected: Sequence[SubTopic]) -> str:
    """
    Pick the catalog topic that best represents the selected sub-topics.

    Most frequently matched known key wins (first seen on ties); otherwise
    the first known key of the first sub-topic; otherwise the default topic.
    """
    counts = Counter(
        key
        for sub in selected
        for key in sub.matched_topic_keys
        if is_known_topic(key)
    )
    if counts:
        return counts.most_common(1)[0][0]

    if selected:
        for key in selected[0].matched_topic_keys:
            if is_known_topic(key):
                return key
    return DEFAULT_TOPIC_KEY


def matched_topic_keys(selected: Sequence[SubTopic]) -> List[str]:
    """Every known key across the selection, in first-seen order."""
    keys: List[str] = []
    for sub in selected:
        for key in sub.matched_topic_keys:
            if is_known_topic(key) and key not in keys:
                keys.append(key)
    return keys


class TopicDiscovery:
    def __init__(self, gateway):
        self.gateway = gateway

    async def discover(self, description: str, grade: int) -> List[SubTopic]:
        """
        Ask the model for 8-12 sub-topics matching the description.

        Raises:
            ValueError: empty description
            ParseError: reply has no usable JSON
            CredentialError, TransportError: from the gateway
        """
        description = description.strip()
        if not description:
            raise ValueError("Please describe what you want to learn about!")

        logger.info(f"🔎 [TopicDiscovery] Student description: {description!r}")
        system_prompt = build_topic_discovery_prompt(grade, SCIENCE_TOPICS.values())
        messages = [{"role": "user", "content": build_topic_discovery_request(description)}]

        reply = await self.gateway.complete(messages, system_prompt)
        data = extract_json_object(reply)
        raw_subtopics = data.get("subtopics") or []
        if not isinstance(raw_subtopics, list):
            raise ParseError("'subtopics' is not a list")

        subtopics = [
            SubTopic.from_dict(item)
            for item in raw_subtopics
            if isinstance(item, dict) and item.get("label")
        ]
        logger.info(f"✅ [TopicDiscovery] Got {len(subtopics)} sub-topics")
        return subtopics
