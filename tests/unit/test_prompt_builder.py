"""
Unit Tests for Prompt Builder
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "socratic_science_tutor", "src"))

from socratic_science_tutor.prompt_builder import (
    build_system_prompt,
    build_opening_prompt,
    build_hint_turn,
    build_assessment_prompt,
    build_assessment_request,
    build_topic_discovery_prompt,
    build_auto_tag_prompt,
    format_transcript,
    HINT_PREFIX,
    DEFAULT_HINT_TEXT,
)
from socratic_science_tutor.session_state import SessionState
from socratic_science_tutor.topics import SCIENCE_TOPICS, get_topic


@pytest.fixture
def state():
    return SessionState(student_name="Maya", grade_level=7, current_topic_key="ecosystems")


@pytest.fixture
def topic():
    return get_topic("ecosystems")


class TestSystemPrompt:

    def test_includes_student_grade_and_topic(self, state, topic):
        prompt = build_system_prompt(state, topic)

        assert "Maya" in prompt
        assert "7th grade" in prompt
        assert "Ecosystems" in prompt
        assert "energy transfer, ecosystem balance, human impact" in prompt
        assert "food chains → food webs" in prompt
        assert "DIFFICULTY LEVEL: MEDIUM" in prompt
        assert "[SCORE:XX]" in prompt

    def test_is_deterministic(self, state, topic):
        assert build_system_prompt(state, topic, "notes") == build_system_prompt(state, topic, "notes")

    def test_unknown_grade_uses_default_expectations(self, state, topic):
        state.grade_level = 10
        prompt = build_system_prompt(state, topic)

        assert "food webs, producer/consumer/decomposer, adaptation" in prompt

    def test_curriculum_section_only_when_present(self, state, topic):
        assert "CURRICULUM REFERENCE MATERIAL" not in build_system_prompt(state, topic, "")

        prompt = build_system_prompt(state, topic, "Producers make food from sunlight.")
        assert "CURRICULUM REFERENCE MATERIAL" in prompt
        assert prompt.endswith("Producers make food from sunlight.")

    def test_high_streak_pushes_harder(self, state, topic):
        state.consecutive_high_scores = 2

        assert "Push harder!" in build_system_prompt(state, topic)

    def test_low_streak_scales_back(self, state, topic):
        state.consecutive_low_scores = 1

        assert "Scale back." in build_system_prompt(state, topic)

    def test_focus_areas_section(self, state, topic):
        state.focus_areas = ["Coral reefs", "Kelp forests"]
        state.free_form_description = "ocean life"
        prompt = build_system_prompt(state, topic)

        assert "STUDENT'S CHOSEN FOCUS AREAS: Coral reefs, Kelp forests" in prompt
        assert '"ocean life"' in prompt


class TestOpeningPrompt:

    def test_plain_opening(self, state, topic):
        prompt = build_opening_prompt(state, topic)

        assert prompt.startswith("Start a tutoring session about Ecosystems.")
        assert "Greet Maya warmly" in prompt
        assert "focus areas" not in prompt

    def test_opening_with_focus(self, state, topic):
        state.focus_areas = ["Coral reefs"]
        prompt = build_opening_prompt(state, topic)

        assert "The student specifically chose to focus on: Coral reefs." in prompt
        assert "- Connect to their chosen focus areas" in prompt


class TestHintTurn:

    def test_default_text(self):
        assert build_hint_turn() == f"{HINT_PREFIX} {DEFAULT_HINT_TEXT}"

    def test_custom_text_is_trimmed(self):
        assert build_hint_turn("  what's a producer? ") == "[Student requested a hint] what's a producer?"


class TestAssessmentPrompts:

    def test_system_prompt_names_fields(self):
        prompt = build_assessment_prompt("Maya", 7, "Ecosystems")

        for key in ("strengths", "areasToImprove", "nextSteps", "conceptMastery", "overallSummary"):
            assert key in prompt

    def test_transcript_speakers(self):
        history = [
            {"role": "assistant", "content": "What is a food chain?"},
            {"role": "user", "content": "Plants get eaten by animals"},
        ]

        assert format_transcript(history) == "Tutor: What is a food chain?\n\nStudent: Plants get eaten by animals"
        assert "Student: Plants get eaten by animals" in build_assessment_request(history)


class TestDiscoveryAndTagging:

    def test_discovery_prompt_lists_topics(self):
        prompt = build_topic_discovery_prompt(6, SCIENCE_TOPICS.values())

        assert '"solar-system" (Solar System)' in prompt
        assert "6th grade" in prompt

    def test_auto_tag_prompt_truncates_content(self):
        prompt = build_auto_tag_prompt("Cells", "x" * 5000)

        assert "x" * 3000 in prompt
        assert "x" * 3001 not in prompt
        assert "cells-life" in prompt

    def test_auto_tag_custom_keys(self):
        prompt = build_auto_tag_prompt("", "content", ["electricity"])

        assert "ONLY this list: electricity" in prompt
        assert "Document title: (none)" in prompt
