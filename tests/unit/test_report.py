"""
Unit Tests for the downloadable session report
"""

import sys
import os
from datetime import date

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "socratic_science_tutor", "src"))

from socratic_science_tutor.report import render_session_report, report_filename
from socratic_science_tutor.session_state import SessionState
from socratic_science_tutor.session_summarizer import Assessment
from socratic_science_tutor.topics import get_topic


def make_state(**overrides):
    state = SessionState(student_name="Ada", grade_level=6, current_topic_key="solar-system", question_count=5)
    for key, value in overrides.items():
        setattr(state, key, value)
    return state


ASSESSMENT = Assessment(
    strengths=["Knows planet order", "Curious"],
    areas_to_improve=["Gravity"],
    next_steps=["Watch the Moon", "Draw an orbit"],
    concept_mastery={"planet order": 80, "gravity": 45},
    overall_summary="Ada did great.",
)


class TestSessionReport:

    def test_filename(self):
        assert report_filename(make_state()) == "Ada_solar-system_report.txt"

    def test_report_sections(self):
        report = render_session_report(make_state(), get_topic("solar-system"), ASSESSMENT, date(2024, 3, 7))

        assert report.startswith("SOCRATIC SCIENCE TUTOR - SESSION REPORT\n")
        assert "Student: Ada\n" in report
        assert "Grade Level: 6th Grade\n" in report
        assert "Topic: Solar System\n" in report
        assert "Date: 3/7/2024\n" in report
        assert "Questions Explored: 5\n" in report
        assert "• Knows planet order\n• Curious" in report
        assert "1. Watch the Moon\n2. Draw an orbit" in report
        assert "planet order: 80%\ngravity: 45%" in report
        assert report.endswith("Generated by Socratic Science Tutor\n")

    def test_focus_areas_line_only_when_set(self):
        topic = get_topic("solar-system")

        assert "Focus Areas" not in render_session_report(make_state(), topic, ASSESSMENT, date(2024, 1, 1))
        report = render_session_report(make_state(focus_areas=["Moons", "Comets"]), topic, ASSESSMENT, date(2024, 1, 1))
        assert "Focus Areas: Moons, Comets\n" in report
