"""
Assessment History Store

Persists finished-session assessments using Supabase, with an in-memory
fallback when no client is configured or the database call fails.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AssessmentStore:
    """
    Stores one record per finished session in the `assessments` table.

    Records are plain dicts so they can be returned from the API unchanged.
    """

    TABLE = "assessments"

    def __init__(self, supabase_client=None):
        """
        Args:
            supabase_client: Supabase client instance (optional)
        """
        self.supabase = supabase_client
        self.use_supabase = supabase_client is not None

        # Always initialized, used on errors too
        self._in_memory_records: List[Dict[str, Any]] = []

    def build_record(self, state, assessment) -> Dict[str, Any]:
        """
        Convert a finished session into a storable record.

        Args:
            state: SessionState of the finished session
            assessment: Assessment from the summarizer

        Returns:
            Dictionary representation
        """
        return {
            "session_id": state.session_id,
            "student_name": state.student_name,
            "grade_level": state.grade_level,
            "topic_key": state.current_topic_key,
            "focus_areas": list(state.focus_areas),
            "question_count": state.question_count,
            "hints_used": state.hints_used,
            "final_difficulty": state.difficulty_level,
            "score_history": list(state.score_history),
            "concept_mastery": state.mastery_snapshot(),
            "assessment": assessment.to_dict(),
            "is_fallback": assessment.is_fallback,
            "created_at": datetime.now().isoformat(),
        }

    async def save_assessment(self, state, assessment) -> bool:
        """
        Save a finished session's assessment.

        Returns:
            True if written to the database, False if kept in memory only
        """
        record = self.build_record(state, assessment)

        if not self.use_supabase:
            self._in_memory_records.append(record)
            return False

        try:
            self.supabase.table(self.TABLE).insert(record).execute()
            logger.info(f"✅ [Assessments] Saved assessment for session {state.session_id}")
            return True
        except Exception as e:
            logger.warning(f"⚠️ [Assessments] Error saving to database, keeping in memory: {e}")
            self._in_memory_records.append(record)
            return False

    async def list_assessments(self, student_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Load stored assessments, newest first.

        Args:
            student_name: Only return this student's records (optional)
        """
        if self.use_supabase:
            try:
                query = self.supabase.table(self.TABLE).select("*")
                if student_name:
                    query = query.eq("student_name", student_name)
                result = query.order("created_at", desc=True).execute()
                return list(result.data or [])
            except Exception as e:
                logger.warning(f"⚠️ [Assessments] Error loading from database, using memory: {e}")

        records = [
            r for r in self._in_memory_records
            if student_name is None or r["student_name"] == student_name
        ]
        return sorted(records, key=lambda r: r["created_at"], reverse=True)
