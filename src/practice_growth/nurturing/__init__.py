"""Nurture sequences, send timing, personalization and engagement rules.

The orchestration lives in ``practice_growth.nurturing.engine``.
"""

from .engagement import EngagementType, engagement_score, evaluate_event
from .sequences import (
    SEQUENCE_CATALOG,
    Channel,
    ContentType,
    EmailStep,
    NurtureSequenceTemplate,
    SequenceCatalog,
    SmsStep,
    select_sequence,
    starting_step,
)
from .templates import PracticeProfile, personalization, render_content
from .timing import OptimalTiming, calculate_optimal_timing

__all__ = [
    "EngagementType",
    "engagement_score",
    "evaluate_event",
    "SEQUENCE_CATALOG",
    "Channel",
    "ContentType",
    "EmailStep",
    "NurtureSequenceTemplate",
    "SequenceCatalog",
    "SmsStep",
    "select_sequence",
    "starting_step",
    "PracticeProfile",
    "personalization",
    "render_content",
    "OptimalTiming",
    "calculate_optimal_timing",
]
