"""
Session Summarizer

Produces the end-of-session assessment from the full transcript. Any problem
with the model's answer degrades to a fixed generic assessment instead of
failing the session end.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from socratic_science_tutor.errors import ParseError, TransportError
from socratic_science_tutor.prompt_builder import build_assessment_prompt, build_assessment_request
from socratic_science_tutor.response_parser import extract_json_object

logger = logging.getLogger(__name__)


@dataclass
class Assessment:
    """Parent-facing summary of one session."""
    strengths: List[str] = field(default_factory=list)
    areas_to_improve: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    concept_mastery: Dict[str, int] = field(default_factory=dict)
    overall_summary: str = ""
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strengths": list(self.strengths),
            "areasToImprove": list(self.areas_to_improve),
            "nextSteps": list(self.next_steps),
            "conceptMastery": dict(self.concept_mastery),
            "overallSummary": self.overall_summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assessment":
        """
        Build from the model's JSON.

        Raises:
            ParseError: if a field is missing or has the wrong shape
        """
        try:
            strengths = _string_list(data["strengths"])
            areas = _string_list(data["areasToImprove"])
            next_steps = _string_list(data["nextSteps"])
            summary = data["overallSummary"]
            raw_mastery = data["conceptMastery"]
        except KeyError as e:
            raise ParseError(f"Assessment is missing field {e}") from e

        if not isinstance(summary, str) or not isinstance(raw_mastery, dict):
            raise ParseError("Assessment fields have the wrong type")
        try:
            mastery = {str(k): int(round(float(v))) for k, v in raw_mastery.items()}
        except (TypeError, ValueError) as e:
            raise ParseError(f"Non-numeric concept mastery value: {e}") from e

        return cls(
            strengths=strengths,
            areas_to_improve=areas,
            next_steps=next_steps,
            concept_mastery=mastery,
            overall_summary=summary,
        )


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise ParseError(f"Expected a list, got {type(value).__name__}")
    return [str(v) for v in value]


def fallback_assessment(student_name: str, topic_name: str) -> Assessment:
    return Assessment(
        strengths=["Participated in the learning session", "Showed willingness to explore the topic"],
        areas_to_improve=["Continue practicing with guided questions"],
        next_steps=["Review the concepts discussed today", "Try explaining what you learned to someone else"],
        concept_mastery={"General Understanding": 60},
        overall_summary=(
            f"{student_name} participated in a tutoring session about {topic_name}. "
            "Continue exploring this topic to build deeper understanding."
        ),
        is_fallback=True,
    )


class SessionSummarizer:
    def __init__(self, gateway):
        self.gateway = gateway

    async def summarize(
        self,
        history: Sequence[Dict[str, str]],
        student_name: str,
        grade: int,
        topic_name: str
    ) -> Assessment:
        """
        Ask the model for a JSON assessment of the conversation.

        Returns the fallback assessment on transport or parse failure.

        Raises:
            CredentialError: the gateway has no usable credential
        """
        system_prompt = build_assessment_prompt(student_name, grade, topic_name)
        messages = [{"role": "user", "content": build_assessment_request(history)}]

        try:
            reply = await self.gateway.complete(messages, system_prompt)
            assessment = Assessment.from_dict(extract_json_object(reply))
        except (TransportError, ParseError) as e:
            logger.warning(f"⚠️ [Summary] Using fallback assessment: {e}")
            return fallback_assessment(student_name, topic_name)

        logger.info(
            f"✅ [Summary] Assessment ready for {student_name}: "
            f"{len(assessment.concept_mastery)} concepts, {len(assessment.strengths)} strengths"
        )
        return assessment
