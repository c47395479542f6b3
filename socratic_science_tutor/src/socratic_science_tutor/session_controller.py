"""
Tutoring Session Controller

Drives one student's session through its phases:

    setup → topic_selection → chatting → summary

Each turn builds the system prompt, calls the AI gateway, parses the hidden
assessment tags, updates difficulty and mastery, and records the cleaned
reply. Turns are strictly sequential; a turn submitted while another is in
flight is rejected rather than queued.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from socratic_science_tutor.errors import (
    CredentialError,
    SessionError,
    SessionNotActiveError,
    TransportError,
    TurnInProgressError,
)
from socratic_science_tutor.difficulty_adapter import DifficultyAdapter
from socratic_science_tutor.prompt_builder import (
    build_hint_turn,
    build_opening_prompt,
    build_system_prompt,
)
from socratic_science_tutor.report import render_session_report
from socratic_science_tutor.response_parser import ResponseParser, strip_control_tags
from socratic_science_tutor.session_state import (
    PHASE_CHATTING,
    PHASE_SETUP,
    PHASE_SUMMARY,
    PHASE_TOPIC_SELECTION,
    ConceptMastery,
    SessionState,
)
from socratic_science_tutor.session_summarizer import Assessment, SessionSummarizer
from socratic_science_tutor.topic_discovery import (
    SubTopic,
    TopicDiscovery,
    determine_primary_topic,
    matched_topic_keys,
)
from socratic_science_tutor.topics import Topic, get_topic

logger = logging.getLogger(__name__)

ANSWER_FALLBACK_MESSAGE = "I had a little trouble there. Could you try saying that again?"
HINT_FALLBACK_MESSAGE = "Let me try to help you think about this differently..."

TURN_OPENING = "opening"
TURN_ANSWER = "answer"
TURN_HINT = "hint"


@dataclass
class TurnResult:
    """What the UI needs to render after one tutor turn."""
    kind: str  # "opening", "answer", or "hint"
    reply: str
    question_count: int
    difficulty_level: str
    score: Optional[int] = None
    feedback: Optional[str] = None
    feedback_tone: Optional[str] = None
    concepts_updated: Dict[str, ConceptMastery] = field(default_factory=dict)
    difficulty_changed: bool = False
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "reply": self.reply,
            "questionCount": self.question_count,
            "difficultyLevel": self.difficulty_level,
            "score": self.score,
            "feedback": self.feedback,
            "feedbackTone": self.feedback_tone,
            "conceptsUpdated": {name: m.to_dict() for name, m in self.concepts_updated.items()},
            "difficultyChanged": self.difficulty_changed,
            "isFallback": self.is_fallback,
        }


class SessionController:
    """
    Owns one SessionState and every operation that changes it.

    Collaborators are injected so tests can run without network access:
    the gateway is any AIGateway, the curriculum fetcher and assessment
    store are optional.
    """

    def __init__(
        self,
        gateway,
        curriculum_fetcher=None,
        parser: Optional[ResponseParser] = None,
        difficulty_adapter: Optional[DifficultyAdapter] = None,
        summarizer: Optional[SessionSummarizer] = None,
        topic_discovery: Optional[TopicDiscovery] = None,
        assessment_store=None,
        on_update: Optional[Callable[[TurnResult], None]] = None,
        state: Optional[SessionState] = None,
    ):
        self.gateway = gateway
        self.curriculum_fetcher = curriculum_fetcher
        self.parser = parser or ResponseParser()
        self.difficulty_adapter = difficulty_adapter or DifficultyAdapter()
        self.summarizer = summarizer or SessionSummarizer(gateway)
        self.topic_discovery = topic_discovery or TopicDiscovery(gateway)
        self.assessment_store = assessment_store
        self.on_update = on_update

        self.state = state or SessionState()
        self.curriculum_text = ""
        self.suggested_subtopics: List[SubTopic] = []
        self.selected_subtopics: List[SubTopic] = []
        self.assessment: Optional[Assessment] = None
        self._turn_lock = asyncio.Lock()

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def turn_in_progress(self) -> bool:
        return self._turn_lock.locked()

    @property
    def topic(self) -> Optional[Topic]:
        if not self.state.current_topic_key:
            return None
        return get_topic(self.state.current_topic_key)

    @asynccontextmanager
    async def _exclusive_turn(self):
        if self._turn_lock.locked():
            raise TurnInProgressError("Please wait for the tutor to finish responding")
        async with self._turn_lock:
            yield

    def _require_phase(self, *phases: str):
        if self.state.phase not in phases:
            if PHASE_CHATTING in phases:
                raise SessionNotActiveError(
                    f"No active tutoring session (phase is '{self.state.phase}')"
                )
            raise SessionError(
                f"Operation not allowed in phase '{self.state.phase}' "
                f"(expected {' or '.join(phases)})"
            )

    def _emit(self, result: TurnResult) -> TurnResult:
        if self.on_update is not None:
            self.on_update(result)
        return result

    # ------------------------------------------------------------------
    # Setup and topic selection
    # ------------------------------------------------------------------

    def begin(self, student_name: str, grade: int):
        """Record who is learning and move on to topic selection."""
        self._require_phase(PHASE_SETUP, PHASE_TOPIC_SELECTION)
        student_name = (student_name or "").strip()
        if not student_name:
            raise ValueError("Student name is required")
        if not self.gateway.has_valid_credentials():
            raise CredentialError("A valid API key is required before starting")

        self.state.student_name = student_name
        self.state.grade_level = int(grade)
        self.state.phase = PHASE_TOPIC_SELECTION
        logger.info(f"👋 [Session] {student_name} (grade {grade}) is choosing a topic")

    async def discover_topics(self, description: str) -> List[SubTopic]:
        """
        Suggest sub-topics for a free-form description.

        Gateway errors propagate so the caller can ask the student to retry.
        """
        self._require_phase(PHASE_TOPIC_SELECTION)
        self.state.free_form_description = description.strip()
        subtopics = await self.topic_discovery.discover(description, self.state.grade_level)
        self.suggested_subtopics = subtopics
        self.selected_subtopics = []
        self.state.focus_areas = []
        return subtopics

    def select_topics(self, subtopics: Sequence[SubTopic]) -> str:
        """
        Choose sub-topics to focus on.

        Returns:
            The primary topic key the session will be taught under
        """
        self._require_phase(PHASE_TOPIC_SELECTION)
        if not subtopics:
            raise ValueError("Select at least one sub-topic")

        self.selected_subtopics = list(subtopics)
        self.state.focus_areas = [st.label for st in subtopics]
        primary = determine_primary_topic(self.selected_subtopics)
        self.state.current_topic_key = primary
        logger.info(f"🎯 [TopicDiscovery] Selected {len(subtopics)} sub-topics, primary topic: {primary}")
        return primary

    # ------------------------------------------------------------------
    # Chatting
    # ------------------------------------------------------------------

    async def start_session(
        self,
        topic_key: str,
        grade: int,
        student_name: str,
        focus_areas: Optional[Sequence[str]] = None
    ) -> TurnResult:
        """
        Reset the session, load curriculum, and ask the opening question.

        Raises:
            TopicNotFoundError: unknown topic key
            CredentialError: no usable API credential
            TransportError: the opening question could not be generated
        """
        topic = get_topic(topic_key)
        if not self.gateway.has_valid_credentials():
            raise CredentialError("A valid API key is required before starting")

        async with self._exclusive_turn():
            state = self.state
            state.reset_for_new_topic()
            state.student_name = student_name
            state.grade_level = int(grade)
            state.current_topic_key = topic_key
            if focus_areas is not None:
                state.focus_areas = list(focus_areas)
            self.assessment = None

            self.curriculum_text = await self._load_curriculum(topic_key, state.grade_level)

            system_prompt = build_system_prompt(state, topic, self.curriculum_text)
            state.conversation_history.append(
                {"role": "user", "content": build_opening_prompt(state, topic)}
            )
            try:
                reply = await self.gateway.complete(state.conversation_history, system_prompt)
            except (CredentialError, TransportError) as e:
                state.conversation_history = []
                # No opening question, so the reset session must not accept turns
                if state.phase != PHASE_SETUP:
                    state.phase = PHASE_TOPIC_SELECTION
                logger.error(f"❌ [Session] Could not generate opening question: {e}")
                raise

            # The seed prompt is dropped; history starts with the tutor's greeting
            opening = strip_control_tags(reply)
            state.conversation_history = [{"role": "assistant", "content": opening}]
            state.question_count = 1
            state.phase = PHASE_CHATTING

            logger.info(
                f"✅ [Session] Started {topic.display_name} for {state.student_name} "
                f"(grade {state.grade_level}, curriculum: {len(self.curriculum_text)} chars)"
            )
            return self._emit(TurnResult(
                kind=TURN_OPENING,
                reply=opening,
                question_count=state.question_count,
                difficulty_level=state.difficulty_level,
            ))

    async def _load_curriculum(self, topic_key: str, grade: int) -> str:
        if self.curriculum_fetcher is None:
            return ""
        keys = matched_topic_keys(self.selected_subtopics)
        if topic_key not in keys:
            keys.insert(0, topic_key)
        text = await self.curriculum_fetcher.fetch_for_topics(keys, grade)
        if text:
            logger.info(f"📚 [Session] Curriculum loaded, length: {len(text)}")
        return text

    async def submit_answer(self, text: str) -> TurnResult:
        text = (text or "").strip()
        if not text:
            raise ValueError("Answer text is required")
        return await self._run_turn(text, is_hint=False)

    async def request_hint(self, text: str = "") -> TurnResult:
        return await self._run_turn(build_hint_turn(text or ""), is_hint=True)

    async def _run_turn(self, user_content: str, is_hint: bool) -> TurnResult:
        self._require_phase(PHASE_CHATTING)

        async with self._exclusive_turn():
            state = self.state
            topic = get_topic(state.current_topic_key)
            system_prompt = build_system_prompt(state, topic, self.curriculum_text)
            state.conversation_history.append({"role": "user", "content": user_content})

            try:
                reply = await self.gateway.complete(state.conversation_history, system_prompt)
            except CredentialError:
                state.conversation_history.pop()
                raise
            except TransportError as e:
                # Student may resend; the orphaned turn is not kept
                state.conversation_history.pop()
                logger.warning(f"⚠️ [Session] Turn failed, showing fallback message: {e}")
                return self._emit(TurnResult(
                    kind=TURN_HINT if is_hint else TURN_ANSWER,
                    reply=HINT_FALLBACK_MESSAGE if is_hint else ANSWER_FALLBACK_MESSAGE,
                    question_count=state.question_count,
                    difficulty_level=state.difficulty_level,
                    is_fallback=True,
                ))

            parsed = self.parser.parse(reply, state, topic)
            if parsed.score is not None:
                state.score_history.append(parsed.score)
            adjustment = self.difficulty_adapter.record_score(state, parsed.score)

            if is_hint:
                state.hints_used += 1
            if parsed.feedback:
                state.last_feedback = parsed.feedback

            state.conversation_history.append({"role": "assistant", "content": parsed.clean_response})
            state.question_count += 1

            logger.info(
                f"💬 [Session] Turn {state.question_count} "
                f"({'hint' if is_hint else 'answer'}): score={parsed.score}, "
                f"difficulty={state.difficulty_level}, concepts={len(state.concept_mastery)}"
            )
            return self._emit(TurnResult(
                kind=TURN_HINT if is_hint else TURN_ANSWER,
                reply=parsed.clean_response,
                question_count=state.question_count,
                difficulty_level=state.difficulty_level,
                score=parsed.score,
                feedback=parsed.feedback,
                feedback_tone=parsed.feedback_tone,
                concepts_updated=parsed.concepts_updated,
                difficulty_changed=adjustment.should_adjust,
            ))

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    async def end_session(self) -> Assessment:
        """
        Summarize the conversation and close the session.

        The assessment falls back to a generic one if the model's answer is
        unusable; persistence failures are logged and ignored.
        """
        self._require_phase(PHASE_CHATTING)

        async with self._exclusive_turn():
            state = self.state
            topic = get_topic(state.current_topic_key)
            assessment = await self.summarizer.summarize(
                state.conversation_history,
                state.student_name,
                state.grade_level,
                topic.display_name,
            )
            self.assessment = assessment
            state.ended = True
            state.phase = PHASE_SUMMARY

            if self.assessment_store is not None:
                try:
                    await self.assessment_store.save_assessment(state, assessment)
                except Exception as e:
                    logger.warning(f"⚠️ [Session] Could not persist assessment: {e}")

            logger.info(
                f"🏁 [Session] Ended after {state.question_count} questions "
                f"({state.hints_used} hints, final difficulty {state.difficulty_level})"
            )
            return assessment

    def render_report(self, report_date=None) -> str:
        if self.assessment is None:
            raise SessionError("The session has not been summarized yet")
        return render_session_report(self.state, self.topic, self.assessment, report_date)

    def new_session(self):
        """Discard everything and return to setup. The session id is kept."""
        if self.turn_in_progress:
            raise TurnInProgressError("Cannot reset while the tutor is responding")
        self.state = SessionState(session_id=self.state.session_id)
        self.curriculum_text = ""
        self.suggested_subtopics = []
        self.selected_subtopics = []
        self.assessment = None
        logger.info(f"🔄 [Session] Reset session {self.state.session_id}")

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view of the session for rendering."""
        state = self.state
        topic = self.topic
        return {
            "sessionId": state.session_id,
            "phase": state.phase,
            "studentName": state.student_name,
            "gradeLevel": state.grade_level,
            "topicKey": state.current_topic_key,
            "topicName": topic.display_name if topic else None,
            "focusAreas": list(state.focus_areas),
            "questionCount": state.question_count,
            "difficultyLevel": state.difficulty_level,
            "currentScore": state.current_score,
            "scoreHistory": list(state.score_history),
            "hintsUsed": state.hints_used,
            "conceptMastery": state.mastery_snapshot(),
            "lastFeedback": state.last_feedback,
            "conversationHistory": [dict(m) for m in state.conversation_history],
            "suggestedSubtopics": [st.to_dict() for st in self.suggested_subtopics],
            "assessment": self.assessment.to_dict() if self.assessment else None,
        }
