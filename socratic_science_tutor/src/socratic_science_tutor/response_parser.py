"""
Tutor Response Parser

Extracts the hidden assessment block the model appends to every reply:

    [SCORE:85]
    [CONCEPTS:planet order=80,gravity basics=55]
    [FEEDBACK:You're connecting gravity to orbits nicely!]

and returns the reply with those control tags stripped. Bracketed tags are
preferred; looser `CONCEPTS:` / `FEEDBACK:` lines are accepted as fallback.

Note: `parse()` is not pure. Accepted concept scores are written into
`state.concept_mastery`.
"""

import re
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from socratic_science_tutor.session_state import ConceptMastery, mastery_status
from socratic_science_tutor.errors import ParseError

logger = logging.getLogger(__name__)

SCORE_TAG = re.compile(r"\[SCORE:\s*(\d+)\s*\]", re.IGNORECASE)
CONCEPTS_TAG = re.compile(r"\[CONCEPTS:\s*([^\]]+)\]", re.IGNORECASE)
CONCEPTS_FALLBACK = re.compile(r"CONCEPTS:\s*(.+?)(?:\n|\[|$)", re.IGNORECASE)
FEEDBACK_TAG = re.compile(r"\[FEEDBACK:\s*([^\]]+)\]", re.IGNORECASE)
FEEDBACK_FALLBACK = re.compile(r"FEEDBACK:\s*(.+?)(?:\n|$)", re.IGNORECASE)

CONCEPT_SEPARATORS = re.compile(r"[,;]+")
CONCEPT_PAIR = re.compile(r"(.+?)\s*[=:\-]\s*(-?\d+)")
SURROUNDING_QUOTES = re.compile(r"^[\"']|[\"']$")

# Removal order matters: bracketed forms first, then bare fallback lines
CLEANUP_PATTERNS = [
    re.compile(r"\[SCORE:\s*\d+\s*\]", re.IGNORECASE),
    re.compile(r"\[CONCEPTS:[^\]]*\]", re.IGNORECASE),
    re.compile(r"\[FEEDBACK:[^\]]*\]", re.IGNORECASE),
    re.compile(r"CONCEPTS:\s*.+?(?=\n|$)", re.IGNORECASE),
    re.compile(r"FEEDBACK:\s*.+?(?=\n|$)", re.IGNORECASE),
]

MIN_SCORE = 0
MAX_SCORE = 100


@dataclass
class ParsedResponse:
    """Control information extracted from one model reply."""
    score: Optional[int]
    clean_response: str
    feedback: Optional[str] = None
    feedback_tone: Optional[str] = None  # "great", "good", "working", "struggling"
    concepts_updated: Dict[str, ConceptMastery] = field(default_factory=dict)


def canned_feedback(score: int) -> str:
    """Encouragement used when the model scored the turn but sent no feedback."""
    if score >= 80:
        return "Great understanding! Keep pushing deeper."
    if score >= 60:
        return "Good thinking! You're on the right track."
    if score >= 40:
        return "You're building understanding - keep exploring!"
    return "Don't worry, we'll work through this together!"


def basics_status(score: int) -> str:
    """Status for a concept synthesized from the turn score. Has no "new" band."""
    if score >= 70:
        return "high"
    if score >= 50:
        return "medium"
    return "low"


def feedback_tone(score: Optional[int]) -> str:
    if score is None:
        return "good"
    if score >= 80:
        return "great"
    if score >= 60:
        return "good"
    if score >= 40:
        return "working"
    return "struggling"


def parse_score(text: str) -> int:
    """
    Parse the [SCORE:XX] tag.

    Raises:
        ParseError: if the tag is absent or the value is outside 0-100
    """
    match = SCORE_TAG.search(text)
    if not match:
        raise ParseError("No [SCORE:XX] tag found")
    score = int(match.group(1))
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise ParseError(f"Score {score} outside {MIN_SCORE}-{MAX_SCORE}")
    return score


def parse_concept_string(concept_str: str) -> Dict[str, ConceptMastery]:
    """
    Parse "name=score" pairs separated by commas or semicolons.

    `name - score` and `name: score` are accepted too. Pairs whose score is
    outside 0-100 are dropped.
    """
    concepts: Dict[str, ConceptMastery] = {}
    for pair in CONCEPT_SEPARATORS.split(concept_str):
        match = CONCEPT_PAIR.search(pair)
        if not match:
            continue
        name = SURROUNDING_QUOTES.sub("", match.group(1).strip()).strip()
        concept_score = int(match.group(2))
        if not name or not MIN_SCORE <= concept_score <= MAX_SCORE:
            logger.debug(f"⏭️ [Concepts] Dropped pair: {pair!r}")
            continue
        concepts[name] = ConceptMastery(score=concept_score, status=mastery_status(concept_score))
    return concepts


def strip_control_tags(text: str) -> str:
    for pattern in CLEANUP_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def find_json_block(text: str) -> Optional[str]:
    """Return the first balanced {...} block in text, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the first JSON object embedded in a model reply.

    Raises:
        ParseError: if no block is found or it is not a valid JSON object
    """
    block = find_json_block(text or "")
    if block is None:
        raise ParseError("No JSON object found in response")
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("JSON block is not an object")
    return data


class ResponseParser:
    """Regex extraction of the score/concepts/feedback tag block."""

    def parse(self, raw_reply: str, state, topic=None) -> ParsedResponse:
        """
        Parse one raw model reply.

        Args:
            raw_reply: Text returned by the AI gateway
            state: SessionState whose concept_mastery is updated in place
            topic: Current Topic, used to name a synthesized concept

        Returns:
            ParsedResponse with the score (or None) and the cleaned reply
        """
        logger.debug(f"🔍 [Parse] Raw AI response (last 300 chars): {raw_reply[-300:]}")

        try:
            score: Optional[int] = parse_score(raw_reply)
            logger.debug(f"🔍 [Parse] Score: {score}")
        except ParseError as e:
            score = None
            logger.warning(f"⚠️ [Parse] {e}")

        concepts: Dict[str, ConceptMastery] = {}
        if score is not None:
            concepts_match = CONCEPTS_TAG.search(raw_reply) or CONCEPTS_FALLBACK.search(raw_reply)
            if concepts_match:
                concepts = parse_concept_string(concepts_match.group(1))
            state.concept_mastery.update(concepts)
        else:
            logger.debug("🔍 [Parse] No valid score, concept tags ignored")

        feedback_match = FEEDBACK_TAG.search(raw_reply) or FEEDBACK_FALLBACK.search(raw_reply)
        feedback = feedback_match.group(1).strip() if feedback_match else None

        if score is not None and not state.concept_mastery and state.question_count > 1:
            # Keep the mastery display non-empty
            topic_name = topic.display_name if topic else "General"
            name = f"{topic_name} basics"
            synthesized = ConceptMastery(score=score, status=basics_status(score))
            state.concept_mastery[name] = synthesized
            concepts[name] = synthesized
            logger.info(f"🧩 [Parse] Auto-generated concept from score: {name!r} = {score}")

        if score is not None and not feedback:
            feedback = canned_feedback(score)

        return ParsedResponse(
            score=score,
            clean_response=strip_control_tags(raw_reply),
            feedback=feedback,
            feedback_tone=feedback_tone(score) if feedback else None,
            concepts_updated=concepts,
        )
