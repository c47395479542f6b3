"""
Automatic Difficulty Adaptation

Adjusts question difficulty from consecutive high or low turn scores.
"""

import logging
from typing import Optional
from dataclasses import dataclass

from socratic_science_tutor.session_state import DIFFICULTY_LEVELS

logger = logging.getLogger(__name__)


@dataclass
class DifficultyAdjustment:
    """Result of recording one score."""
    should_adjust: bool
    direction: Optional[str]  # "increase", "decrease", or None
    reason: str
    new_difficulty: Optional[str] = None


class DifficultyAdapter:
    """
    Steps difficulty one level at a time based on streaks.

    Algorithm:
    - score >= 80 extends the high streak and breaks the low streak
    - score < 50 extends the low streak and breaks the high streak
    - anything in between breaks both
    - 3 highs in a row → one level up, 2 lows in a row → one level down
    - a missing score changes nothing
    """

    DIFFICULTY_LEVELS = DIFFICULTY_LEVELS

    # Thresholds
    HIGH_SCORE_THRESHOLD = 80
    LOW_SCORE_THRESHOLD = 50
    HIGH_STREAK_TO_ADVANCE = 3
    LOW_STREAK_TO_RETREAT = 2

    def record_score(self, state, score: Optional[int]) -> DifficultyAdjustment:
        """
        Update streak counters on the session state and apply any level change.

        Args:
            state: SessionState object (mutated in place)
            score: Parsed turn score (0-100), or None when parsing failed

        Returns:
            DifficultyAdjustment describing what happened
        """
        if score is None:
            return DifficultyAdjustment(
                should_adjust=False,
                direction=None,
                reason="No score parsed"
            )

        if score >= self.HIGH_SCORE_THRESHOLD:
            state.consecutive_high_scores += 1
            state.consecutive_low_scores = 0
        elif score < self.LOW_SCORE_THRESHOLD:
            state.consecutive_low_scores += 1
            state.consecutive_high_scores = 0
        else:
            state.consecutive_high_scores = 0
            state.consecutive_low_scores = 0

        adjustment = self.check_adjustment(
            state.difficulty_level,
            state.consecutive_high_scores,
            state.consecutive_low_scores
        )
        self.apply_adjustment(state, adjustment)

        logger.debug(
            f"📊 [Difficulty] Level: {state.difficulty_level}, "
            f"consecutiveHigh: {state.consecutive_high_scores}, "
            f"consecutiveLow: {state.consecutive_low_scores}"
        )
        return adjustment

    def check_adjustment(
        self,
        current_difficulty: str,
        consecutive_high: int,
        consecutive_low: int
    ) -> DifficultyAdjustment:
        """
        Check if difficulty should change given the current streaks.

        Args:
            current_difficulty: Current difficulty level
            consecutive_high: Length of the current high-score streak
            consecutive_low: Length of the current low-score streak

        Returns:
            DifficultyAdjustment with recommendation
        """
        if consecutive_high >= self.HIGH_STREAK_TO_ADVANCE:
            new_difficulty = self._raise_difficulty(current_difficulty)
            if new_difficulty != current_difficulty:
                return DifficultyAdjustment(
                    should_adjust=True,
                    direction="increase",
                    reason=f"{consecutive_high} high scores in a row",
                    new_difficulty=new_difficulty
                )

        if consecutive_low >= self.LOW_STREAK_TO_RETREAT:
            new_difficulty = self._lower_difficulty(current_difficulty)
            if new_difficulty != current_difficulty:
                return DifficultyAdjustment(
                    should_adjust=True,
                    direction="decrease",
                    reason=f"{consecutive_low} low scores in a row",
                    new_difficulty=new_difficulty
                )

        return DifficultyAdjustment(
            should_adjust=False,
            direction=None,
            reason=f"Level unchanged (high={consecutive_high}, low={consecutive_low})"
        )

    def _raise_difficulty(self, current: str) -> str:
        """Raise difficulty level."""
        if current not in self.DIFFICULTY_LEVELS:
            return current

        current_idx = self.DIFFICULTY_LEVELS.index(current)
        if current_idx < len(self.DIFFICULTY_LEVELS) - 1:
            return self.DIFFICULTY_LEVELS[current_idx + 1]
        return current  # Already at max

    def _lower_difficulty(self, current: str) -> str:
        """Lower difficulty level."""
        if current not in self.DIFFICULTY_LEVELS:
            return current

        current_idx = self.DIFFICULTY_LEVELS.index(current)
        if current_idx > 0:
            return self.DIFFICULTY_LEVELS[current_idx - 1]
        return current  # Already at min

    def apply_adjustment(
        self,
        state,
        adjustment: DifficultyAdjustment
    ) -> bool:
        """
        Apply difficulty adjustment to session state.

        The streak that triggered the change is reset.

        Returns:
            True if adjustment was applied, False otherwise
        """
        if not adjustment.should_adjust or not adjustment.new_difficulty:
            return False

        old_difficulty = state.difficulty_level
        state.difficulty_level = adjustment.new_difficulty
        if adjustment.direction == "increase":
            state.consecutive_high_scores = 0
        else:
            state.consecutive_low_scores = 0

        logger.info(f"📊 [Difficulty] Adjusted: {old_difficulty} → {adjustment.new_difficulty} ({adjustment.reason})")

        return True
