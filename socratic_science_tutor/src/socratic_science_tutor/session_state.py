"""
Session State Data Model

Defines the SessionState dataclass for a single tutoring session.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Dict
from datetime import datetime


DIFFICULTY_LEVELS = ["easy", "medium", "hard", "challenge"]
DEFAULT_DIFFICULTY = "medium"

# Session phases, in order
PHASE_SETUP = "setup"
PHASE_TOPIC_SELECTION = "topic_selection"
PHASE_CHATTING = "chatting"
PHASE_SUMMARY = "summary"


@dataclass
class ConceptMastery:
    """Running mastery estimate for one concept."""
    score: int
    status: str  # "new", "low", "medium", or "high"

    def to_dict(self) -> Dict[str, object]:
        return {"score": self.score, "status": self.status}


def mastery_status(score: int) -> str:
    """Map a 0-100 concept score to its mastery status."""
    if score >= 70:
        return "high"
    if score >= 50:
        return "medium"
    if score >= 1:
        return "low"
    return "new"


@dataclass
class SessionState:
    """State of one tutoring session, owned by its SessionController."""
    student_name: str = ""
    grade_level: int = 6
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    phase: str = PHASE_SETUP
    current_topic_key: Optional[str] = None
    conversation_history: List[Dict[str, str]] = field(default_factory=list)
    question_count: int = 0
    # Adaptive difficulty
    difficulty_level: str = DEFAULT_DIFFICULTY
    consecutive_high_scores: int = 0
    consecutive_low_scores: int = 0
    # Concept name -> mastery, never cleared mid-session
    concept_mastery: Dict[str, ConceptMastery] = field(default_factory=dict)
    score_history: List[int] = field(default_factory=list)
    hints_used: int = 0
    last_feedback: Optional[str] = None
    # Free-form topic discovery
    free_form_description: str = ""
    focus_areas: List[str] = field(default_factory=list)
    ended: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    def reset_for_new_topic(self):
        """Clear every per-session counter ahead of a fresh start."""
        self.conversation_history = []
        self.question_count = 0
        self.difficulty_level = DEFAULT_DIFFICULTY
        self.consecutive_high_scores = 0
        self.consecutive_low_scores = 0
        self.concept_mastery = {}
        self.score_history = []
        self.hints_used = 0
        self.last_feedback = None
        self.ended = False

    @property
    def current_score(self) -> Optional[int]:
        return self.score_history[-1] if self.score_history else None

    def mastery_snapshot(self) -> Dict[str, Dict[str, object]]:
        return {name: m.to_dict() for name, m in self.concept_mastery.items()}
