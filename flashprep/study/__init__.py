"""
Study Module for FlashPrep.

Provides:
- Weighted ordering of review candidates
- Adaptive test-prep sessions
- Free study sessions
- Mastery statistics
"""

from flashprep.study.free_study import FreeStudySession
from flashprep.study.mastery_calculator import MasteryCalculator
from flashprep.study.review_session import ReviewFilter, ReviewSession, start_review_session
from flashprep.study.scheduler import WeightedSampler, card_weight
from flashprep.study.study_service import StudyService

__all__ = [
    "WeightedSampler",
    "card_weight",
    "ReviewSession",
    "ReviewFilter",
    "start_review_session",
    "FreeStudySession",
    "MasteryCalculator",
    "StudyService",
]
