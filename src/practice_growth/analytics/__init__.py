"""Lead source and nurture sequence analytics."""

from .reports import (
    NurtureReport,
    SequencePerformance,
    SourcePerformance,
    nurture_performance,
    source_performance,
)

__all__ = [
    "NurtureReport",
    "SequencePerformance",
    "SourcePerformance",
    "nurture_performance",
    "source_performance",
]
