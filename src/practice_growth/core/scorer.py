"""Lead scoring engine: factor extraction, quality and urgency."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import List, Optional, Dict, Tuple

from ..exceptions import ValidationFailure
from .config import ScoringConfig
from .predictor import Recommendation, conversion_probability, recommend
from .signals import IntentSignal, detect_intent_signals

# (minimum, points) bands, highest first
VISIT_BANDS: List[Tuple[int, int]] = [(5, 20), (3, 15), (2, 10), (1, 5)]
PAGE_VIEW_BANDS: List[Tuple[int, int]] = [(10, 15), (5, 10), (3, 5)]
DWELL_BANDS: List[Tuple[int, int]] = [(300, 15), (120, 10), (60, 5)]
FORM_FRICTION_POINTS = 10

FACTOR_CAPS: Dict[str, int] = {
    "visit_frequency": 20,
    "page_depth": 15,
    "dwell_time": 15,
    "form_friction": 15,
    "email_engagement": 15,
    "source_quality": 20,
}


def _band(value: int, bands: List[Tuple[int, int]]) -> int:
    for minimum, points in bands:
        if value >= minimum:
            return points
    return 0


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class LeadCounters:
    """Raw behavioral and engagement counters for one lead."""

    website_visits: int = 0
    page_views: int = 0
    time_on_site_seconds: int = 0
    form_abandoned: bool = False
    emails_opened: int = 0
    links_clicked: int = 0
    source: str = "website"
    last_page_viewed: Optional[str] = None

    def __post_init__(self):
        for name in ("website_visits", "page_views", "time_on_site_seconds", "emails_opened", "links_clicked"):
            if getattr(self, name) < 0:
                raise ValidationFailure(f"{name} cannot be negative (got {getattr(self, name)})")

    @classmethod
    def from_lead(cls, lead) -> "LeadCounters":
        return cls(
            website_visits=lead.website_visits,
            page_views=lead.page_views,
            time_on_site_seconds=lead.time_on_site_seconds,
            form_abandoned=lead.form_abandoned,
            emails_opened=lead.emails_opened,
            links_clicked=lead.links_clicked,
            source=lead.source.value,
            last_page_viewed=lead.last_page_viewed,
        )


@dataclass(frozen=True)
class ScoreFactorVector:
    """Six bounded sub-scores whose sum is the quality score."""

    visit_frequency: int = 0
    page_depth: int = 0
    dwell_time: int = 0
    form_friction: int = 0
    email_engagement: int = 0
    source_quality: int = 0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            cap = FACTOR_CAPS[f.name]
            if not 0 <= value <= cap:
                raise ValidationFailure(f"{f.name} must be within 0-{cap}, got {value}")

    @property
    def quality(self) -> int:
        return _clamp(sum(self.as_dict().values()))

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> "ScoreFactorVector":
        return cls(**{name: data.get(name, 0) for name in FACTOR_CAPS})


def extract_factors(counters: LeadCounters, config: Optional[ScoringConfig] = None) -> ScoreFactorVector:
    """Turn raw counters into a normalized factor vector."""
    config = config or ScoringConfig()

    opens, clicks = counters.emails_opened, counters.links_clicked
    if opens >= 3 and clicks >= 2:
        email = 15
    elif opens >= 2 and clicks >= 1:
        email = 10
    elif opens >= 1:
        email = 5
    else:
        email = 0

    return ScoreFactorVector(
        visit_frequency=_band(counters.website_visits, VISIT_BANDS),
        page_depth=_band(counters.page_views, PAGE_VIEW_BANDS),
        dwell_time=_band(counters.time_on_site_seconds, DWELL_BANDS),
        form_friction=FORM_FRICTION_POINTS if counters.form_abandoned else 0,
        email_engagement=email,
        source_quality=config.source_score(counters.source),
    )


def compute_urgency(counters: LeadCounters, days_since_created: int) -> int:
    """Time-sensitivity of outreach, 0-100."""
    if days_since_created < 0:
        raise ValidationFailure("days_since_created cannot be negative")

    urgency = 0
    if counters.website_visits >= 3 and days_since_created <= 3:
        urgency += 30
    elif counters.website_visits >= 2 and days_since_created <= 7:
        urgency += 20

    if counters.page_views >= 5:
        urgency += 20

    if counters.time_on_site_seconds >= 300:
        urgency += 20
    elif counters.time_on_site_seconds >= 120:
        urgency += 10

    if counters.form_abandoned:
        urgency += 15

    if days_since_created > 14:
        urgency -= 20
    elif days_since_created > 7:
        urgency -= 10

    return _clamp(urgency)


@dataclass
class ScoringResult:
    """Result of scoring a lead."""

    factors: ScoreFactorVector
    quality: int
    urgency: int
    probability: float
    days_since_created: int
    signals: List[IntentSignal] = field(default_factory=list)
    recommendation: Optional[Recommendation] = None

    @property
    def signal_descriptions(self) -> List[str]:
        return [s.description for s in self.signals]

    @property
    def summary(self) -> str:
        """Get a human-readable summary."""
        return (
            f"Quality {self.quality}/100, urgency {self.urgency}/100, "
            f"{self.probability:.0%} likely to convert"
        )


class LeadScorer:
    """Score leads from behavioral counters."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score(self, counters: LeadCounters, days_since_created: int) -> ScoringResult:
        """Score a set of counters for a lead of the given age."""
        factors = extract_factors(counters, self.config)
        quality = factors.quality
        urgency = compute_urgency(counters, days_since_created)
        probability = conversion_probability(
            quality, urgency, counters.source, days_since_created, self.config
        )
        signals = detect_intent_signals(
            website_visits=counters.website_visits,
            page_views=counters.page_views,
            time_on_site_seconds=counters.time_on_site_seconds,
            form_abandoned=counters.form_abandoned,
            emails_opened=counters.emails_opened,
            links_clicked=counters.links_clicked,
            last_page_viewed=counters.last_page_viewed,
        )

        return ScoringResult(
            factors=factors,
            quality=quality,
            urgency=urgency,
            probability=probability,
            days_since_created=days_since_created,
            signals=signals,
            recommendation=recommend(quality, urgency, probability, days_since_created),
        )

    def score_lead(self, lead, now: datetime) -> ScoringResult:
        """Score a stored lead as of ``now``."""
        return self.score(LeadCounters.from_lead(lead), lead.days_since_created(now))

    def explain_score(self, result: ScoringResult) -> str:
        """Generate a detailed explanation of a score."""
        lines = [
            f"Quality: {result.quality}/100",
            f"Urgency: {result.urgency}/100",
            f"Conversion probability: {result.probability:.1%}",
            "",
            "Factors:",
        ]
        for name, value in result.factors.as_dict().items():
            lines.append(f"  {name.replace('_', ' ')}: {value}/{FACTOR_CAPS[name]}")

        if result.signals:
            lines.append("")
            lines.append("Intent signals:")
            for signal in result.signals:
                lines.append(f"  - {signal.description}")

        if result.recommendation:
            lines.append("")
            lines.append(f"Recommendation: {result.recommendation.recommendation}")
            lines.append(f"Next action: {result.recommendation.suggested_action}")

        return "\n".join(lines)


def quick_score(days_since_created: int = 0, **counters) -> ScoringResult:
    """Quick scoring without instantiating a scorer."""
    return LeadScorer().score(LeadCounters(**counters), days_since_created)
