"""
Unit Tests for Response Parser

Tests score/concept/feedback tag extraction and JSON block recovery.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "socratic_science_tutor", "src"))

from socratic_science_tutor.response_parser import (
    ResponseParser,
    parse_score,
    parse_concept_string,
    strip_control_tags,
    basics_status,
    canned_feedback,
    feedback_tone,
    find_json_block,
    extract_json_object,
)
from socratic_science_tutor.session_state import SessionState
from socratic_science_tutor.topics import get_topic
from socratic_science_tutor.errors import ParseError


SAMPLE_REPLY = """Great thinking! What do you think keeps the planets from flying away?

[SCORE:85]
[CONCEPTS:planet order=80,gravity basics=55]
[FEEDBACK:You're connecting gravity to orbits nicely!]"""


class TestParseScore:

    def test_score_found(self):
        assert parse_score("Nice [SCORE:85] work") == 85

    def test_score_with_spaces_and_lowercase(self):
        assert parse_score("[score: 40 ]") == 40

    def test_missing_score_raises(self):
        with pytest.raises(ParseError):
            parse_score("No tags here at all")

    def test_out_of_range_score_raises(self):
        with pytest.raises(ParseError):
            parse_score("[SCORE:150]")


class TestParseConceptString:

    def test_mixed_separators_and_formats(self):
        concepts = parse_concept_string("planet order=80; gravity basics - 55, 'moons': 20")

        assert concepts["planet order"].score == 80
        assert concepts["planet order"].status == "high"
        assert concepts["gravity basics"].status == "medium"
        assert concepts["moons"].score == 20
        assert concepts["moons"].status == "low"

    def test_zero_score_is_new(self):
        assert parse_concept_string("atoms=0")["atoms"].status == "new"

    def test_out_of_range_pair_discarded(self):
        concepts = parse_concept_string("x=150,y=60")

        assert "x" not in concepts
        assert concepts["y"].score == 60

    def test_garbage_pairs_ignored(self):
        assert parse_concept_string("no numbers here, also none") == {}


class TestStripControlTags:

    def test_removes_all_tags(self):
        cleaned = strip_control_tags(SAMPLE_REPLY)

        assert "[" not in cleaned
        assert "SCORE" not in cleaned
        assert cleaned.startswith("Great thinking!")
        assert cleaned.endswith("flying away?")

    def test_removes_fallback_lines(self):
        cleaned = strip_control_tags("Question?\nCONCEPTS: atoms=50\nFEEDBACK: good job")

        assert cleaned == "Question?"


class TestFeedbackHelpers:

    @pytest.mark.parametrize("score,tone", [(95, "great"), (65, "good"), (45, "working"), (10, "struggling"), (None, "good")])
    def test_feedback_tone(self, score, tone):
        assert feedback_tone(score) == tone

    @pytest.mark.parametrize("score,status", [(70, "high"), (50, "medium"), (49, "low"), (0, "low")])
    def test_basics_status(self, score, status):
        assert basics_status(score) == status

    def test_canned_feedback_bands(self):
        assert canned_feedback(80).startswith("Great understanding")
        assert canned_feedback(60).startswith("Good thinking")
        assert canned_feedback(39).startswith("Don't worry")


class TestResponseParser:
    """Test suite for ResponseParser.parse."""

    @pytest.fixture
    def parser(self):
        return ResponseParser()

    @pytest.fixture
    def state(self):
        return SessionState(student_name="Ada", grade_level=6, question_count=1)

    def test_full_reply(self, parser, state):
        parsed = parser.parse(SAMPLE_REPLY, state, get_topic("solar-system"))

        assert parsed.score == 85
        assert parsed.feedback == "You're connecting gravity to orbits nicely!"
        assert parsed.feedback_tone == "great"
        assert "[" not in parsed.clean_response
        assert state.concept_mastery["gravity basics"].score == 55
        assert state.concept_mastery["gravity basics"].status == "medium"

    def test_concepts_upsert_without_clearing(self, parser, state):
        parser.parse("[SCORE:60][CONCEPTS:orbits=40]", state)
        parser.parse("[SCORE:70][CONCEPTS:moons=90]", state)

        assert set(state.concept_mastery) == {"orbits", "moons"}

    def test_missing_score_gives_none(self, parser, state):
        parsed = parser.parse("Just a question with no tags?", state)

        assert parsed.score is None
        assert parsed.feedback is None
        assert parsed.feedback_tone is None
        assert parsed.clean_response == "Just a question with no tags?"

    def test_concepts_ignored_without_score(self, parser, state):
        state.question_count = 2
        parsed = parser.parse("Hmm? [CONCEPTS:friction=30]", state)

        assert parsed.score is None
        assert parsed.concepts_updated == {}
        assert state.concept_mastery == {}

    def test_concepts_ignored_with_out_of_range_score(self, parser, state):
        state.question_count = 2
        parsed = parser.parse("Wow! [SCORE:150][CONCEPTS:friction=30]", state)

        assert parsed.score is None
        assert state.concept_mastery == {}

    def test_canned_feedback_when_absent(self, parser, state):
        parsed = parser.parse("Try again? [SCORE:65][CONCEPTS:orbits=65]", state)

        assert parsed.feedback == canned_feedback(65)
        assert parsed.feedback_tone == "good"

    def test_fallback_feedback_line(self, parser, state):
        parsed = parser.parse("Why?\n[SCORE:50]\nFEEDBACK: Keep going", state)

        assert parsed.feedback == "Keep going"

    def test_synthesized_concept_after_first_question(self, parser, state):
        """A score with no concepts yet creates "<Topic> basics" past the first question."""
        state.question_count = 2
        parsed = parser.parse("Nice. [SCORE:75]", state, get_topic("solar-system"))

        assert "Solar System basics" in state.concept_mastery
        assert parsed.concepts_updated["Solar System basics"].status == "high"

    def test_synthesized_concept_zero_score_is_low(self, parser, state):
        state.question_count = 3
        parser.parse("Let's rethink. [SCORE:0]", state, get_topic("solar-system"))

        assert state.concept_mastery["Solar System basics"].status == "low"

    def test_no_synthesized_concept_on_first_question(self, parser, state):
        parser.parse("Nice. [SCORE:75]", state, get_topic("solar-system"))

        assert state.concept_mastery == {}


class TestJsonBlocks:

    def test_find_block_in_prose(self):
        text = 'Sure! Here you go: {"a": {"b": 1}} hope that helps'

        assert find_json_block(text) == '{"a": {"b": 1}}'

    def test_braces_inside_strings_ignored(self):
        text = '{"summary": "use {curly} braces", "n": 2}'

        assert extract_json_object(text) == {"summary": "use {curly} braces", "n": 2}

    def test_unbalanced_prefix_skipped(self):
        text = 'stray { brace then {"ok": true}'

        assert extract_json_object(text) == {"ok": True}

    def test_no_block_raises(self):
        with pytest.raises(ParseError):
            extract_json_object("nothing structured here")

    def test_invalid_json_raises(self):
        with pytest.raises(ParseError):
            extract_json_object("{'single': 'quotes'}")

    def test_none_input_raises(self):
        with pytest.raises(ParseError):
            extract_json_object(None)
