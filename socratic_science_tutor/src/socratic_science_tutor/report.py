"""Plain-text session report for download."""

from datetime import date
from typing import Optional


def report_filename(state) -> str:
    return f"{state.student_name}_{state.current_topic_key}_report.txt"


def render_session_report(state, topic, assessment, report_date: Optional[date] = None) -> str:
    """
    Render the downloadable report.

    Args:
        state: SessionState of the finished session
        topic: Topic that was taught
        assessment: Assessment produced by the summarizer
        report_date: Date printed in the header (defaults to today)
    """
    d = report_date or date.today()
    focus_line = f"Focus Areas: {', '.join(state.focus_areas)}\n" if state.focus_areas else ""

    strengths = "\n".join(f"• {s}" for s in assessment.strengths)
    growth = "\n".join(f"• {a}" for a in assessment.areas_to_improve)
    next_steps = "\n".join(f"{i}. {s}" for i, s in enumerate(assessment.next_steps, start=1))
    concepts = "\n".join(f"{name}: {pct}%" for name, pct in assessment.concept_mastery.items())

    return f"""SOCRATIC SCIENCE TUTOR - SESSION REPORT
========================================

Student: {state.student_name}
Grade Level: {state.grade_level}th Grade
Topic: {topic.display_name}
Date: {d.month}/{d.day}/{d.year}
Questions Explored: {state.question_count}
{focus_line}
SUMMARY
-------
{assessment.overall_summary}

STRENGTHS
---------
{strengths}

AREAS FOR GROWTH
----------------
{growth}

RECOMMENDED NEXT STEPS
----------------------
{next_steps}

CONCEPT UNDERSTANDING
---------------------
{concepts}

---
Generated by Socratic Science Tutor
"""
