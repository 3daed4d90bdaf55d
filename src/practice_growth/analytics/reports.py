"""Source and nurture performance reports."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..nurturing.sequences import SEQUENCE_CATALOG, SequenceCatalog
from ..storage.models import Lead, LeadStatus

logger = logging.getLogger(__name__)


@dataclass
class SourcePerformance:
    """Lead volume and conversion for one acquisition source."""

    source: str
    total_leads: int = 0
    converted_leads: int = 0
    avg_quality_score: int = 0
    avg_conversion_probability: float = 0.0
    conversion_rate: float = 0.0


@dataclass
class SequencePerformance:
    """How one nurture sequence is doing against its benchmark."""

    sequence_id: str
    sequence_name: str
    total_leads: int = 0
    completed_leads: int = 0
    converted_leads: int = 0
    avg_emails_opened: float = 0.0
    avg_links_clicked: float = 0.0
    avg_steps_completed: float = 0.0
    conversion_rate: float = 0.0
    dropoff_by_step: Dict[int, int] = field(default_factory=dict)
    benchmark_conversion_rate: float = 0.0
    performance_vs_benchmark: float = 0.0


@dataclass
class NurtureReport:
    sequences: List[SequencePerformance] = field(default_factory=list)
    total_leads_nurtured: int = 0
    overall_conversion_rate: float = 0.0


def source_performance(leads: Iterable[Lead]) -> List[SourcePerformance]:
    """Aggregate leads by source, busiest source first."""
    totals: Dict[str, Dict[str, float]] = {}

    for lead in leads:
        stats = totals.setdefault(lead.source.value, {"total": 0, "converted": 0, "quality": 0, "probability": 0.0})
        stats["total"] += 1
        if lead.status is LeadStatus.CONVERTED:
            stats["converted"] += 1
        stats["quality"] += lead.quality_score
        stats["probability"] += lead.conversion_probability

    report = [
        SourcePerformance(
            source=source,
            total_leads=int(stats["total"]),
            converted_leads=int(stats["converted"]),
            avg_quality_score=round(stats["quality"] / stats["total"]),
            avg_conversion_probability=stats["probability"] / stats["total"],
            conversion_rate=stats["converted"] / stats["total"],
        )
        for source, stats in totals.items()
    ]
    report.sort(key=lambda s: s.total_leads, reverse=True)
    return report


def nurture_performance(
    leads: Iterable[Lead],
    catalog: SequenceCatalog = SEQUENCE_CATALOG,
    sequence_id: Optional[str] = None,
) -> NurtureReport:
    """Per-sequence completion, conversion and drop-off.

    A lead's drop-off step is the step its pointer rests on; a lead whose
    pointer reached the final step counts as completed.
    """
    templates = [t for t in catalog.templates if sequence_id is None or t.id == sequence_id]
    stats = {t.id: SequencePerformance(sequence_id=t.id, sequence_name=t.name) for t in templates}
    lengths = {t.id: t.length for t in templates}

    nurtured = 0
    converted = 0
    for lead in leads:
        if lead.active_sequence_id is None:
            continue
        nurtured += 1
        if lead.status is LeadStatus.CONVERTED:
            converted += 1

        seq = stats.get(lead.active_sequence_id)
        if seq is None:
            logger.debug(f"Lead #{lead.id} is on unlisted sequence {lead.active_sequence_id}")
            continue

        step = lead.current_step_number or 0
        seq.total_leads += 1
        seq.avg_emails_opened += lead.emails_opened
        seq.avg_links_clicked += lead.links_clicked
        seq.avg_steps_completed += step
        if lead.status is LeadStatus.CONVERTED:
            seq.converted_leads += 1
        if step >= lengths[seq.sequence_id]:
            seq.completed_leads += 1
        dropoff = step or 1
        seq.dropoff_by_step[dropoff] = seq.dropoff_by_step.get(dropoff, 0) + 1

    for template in templates:
        seq = stats[template.id]
        if seq.total_leads:
            seq.avg_emails_opened /= seq.total_leads
            seq.avg_links_clicked /= seq.total_leads
            seq.avg_steps_completed /= seq.total_leads
            seq.conversion_rate = seq.converted_leads / seq.total_leads
        seq.benchmark_conversion_rate = template.average_conversion_rate
        seq.performance_vs_benchmark = seq.conversion_rate - template.average_conversion_rate

    return NurtureReport(
        sequences=[stats[t.id] for t in templates],
        total_leads_nurtured=nurtured,
        overall_conversion_rate=converted / (nurtured or 1),
    )
