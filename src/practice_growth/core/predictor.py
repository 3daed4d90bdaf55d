"""Conversion probability, recommendation cascade and prediction detail."""

from dataclasses import dataclass, field
from typing import List, Optional, Dict

from .config import ScoringConfig

PROBABILITY_FLOOR = 0.01
PROBABILITY_CEILING = 0.95

# (days older than, multiplier), checked oldest first
AGE_DECAY = [(30, 0.5), (14, 0.7), (7, 0.85)]


def age_decay(days_since_created: int) -> float:
    """Multiplier that shrinks probability as a lead ages."""
    for days, multiplier in AGE_DECAY:
        if days_since_created > days:
            return multiplier
    return 1.0


def conversion_probability(
    quality: int,
    urgency: int,
    source: str,
    days_since_created: int,
    config: Optional[ScoringConfig] = None,
) -> float:
    """Closed-form conversion estimate, never exactly 0 or 1."""
    config = config or ScoringConfig()
    base = (quality / 100) * 0.5 + (urgency / 100) * 0.2
    probability = base * config.source_multiplier(source) * age_decay(days_since_created)
    return max(PROBABILITY_FLOOR, min(PROBABILITY_CEILING, probability))


@dataclass(frozen=True)
class Recommendation:
    """Outcome of the recommendation cascade."""

    tier: str
    recommendation: str
    suggested_action: str


def recommend(quality: int, urgency: int, probability: float, days_since_created: int) -> Recommendation:
    """Map scores to a recommendation. First matching rule wins."""
    if quality >= 70 and urgency >= 60:
        return Recommendation(
            "hot",
            "HOT LEAD - Immediate personal outreach recommended",
            "Call immediately within 5 minutes",
        )
    if quality >= 70:
        return Recommendation(
            "high_value",
            "High-value lead - Personalized follow-up recommended",
            "Send personalized email and schedule call",
        )
    if urgency >= 60:
        return Recommendation(
            "urgent",
            "Active lead showing urgency - Quick response needed",
            "Respond within 1 hour with appointment offer",
        )
    if quality >= 40 or probability >= 0.3:
        return Recommendation(
            "warm",
            "Warm lead - Continue nurturing",
            "Add to automated nurture sequence",
        )
    if days_since_created > 14:
        return Recommendation(
            "aging",
            "Aging lead - Consider re-engagement campaign",
            "Send re-engagement email with special offer",
        )
    return Recommendation(
        "new",
        "New lead - Monitor engagement and nurture",
        "Add to awareness nurture sequence",
    )


@dataclass
class PredictionFactor:
    """A factor pushing the prediction up or down."""

    factor: str
    impact: str  # "positive" or "negative"
    weight: float
    description: str


@dataclass
class ConversionPrediction:
    """Detailed conversion outlook for a single lead."""

    lead_id: Optional[int]
    probability: float
    confidence: float
    factors: List[PredictionFactor] = field(default_factory=list)
    estimated_time_to_convert: str = ""
    estimated_lifetime_value: int = 0
    recommended_actions: List[str] = field(default_factory=list)


def estimate_time_to_convert(probability: float) -> str:
    if probability >= 0.7:
        return "1-3 days"
    if probability >= 0.5:
        return "1-2 weeks"
    if probability >= 0.3:
        return "2-4 weeks"
    return "4+ weeks or unlikely"


def explain_prediction(
    lead_id: Optional[int],
    probability: float,
    score_factors: Dict[str, int],
    days_since_created: int,
    has_contact: bool,
    form_abandoned: bool,
    emails_opened: int,
    config: Optional[ScoringConfig] = None,
) -> ConversionPrediction:
    """Break a stored probability down into factors and next steps."""
    config = config or ScoringConfig()
    factors = []

    visits = score_factors.get("visit_frequency", 0)
    if visits >= 15:
        factors.append(PredictionFactor(
            "Website Engagement", "positive", visits / 20,
            "Multiple site visits indicate strong interest",
        ))
    source_quality = score_factors.get("source_quality", 0)
    if source_quality >= 15:
        factors.append(PredictionFactor(
            "Lead Source", "positive", source_quality / 20,
            "High-quality lead source with good conversion history",
        ))
    email = score_factors.get("email_engagement", 0)
    if email >= 10:
        factors.append(PredictionFactor(
            "Email Engagement", "positive", email / 15,
            "Active engagement with email communications",
        ))
    if score_factors.get("form_friction", 0) >= 10:
        factors.append(PredictionFactor(
            "Form Interaction", "positive", 0.5,
            "Started booking/contact form showing intent",
        ))

    if days_since_created > 14:
        factors.append(PredictionFactor(
            "Lead Age", "negative", min(0.8, days_since_created / 30),
            f"Lead is {days_since_created} days old, conversion likelihood decreases over time",
        ))
    if not has_contact:
        factors.append(PredictionFactor(
            "Contact Information", "negative", 0.6,
            "Missing contact information limits follow-up options",
        ))

    actions = []
    if probability >= 0.6:
        actions.append("Schedule immediate phone call")
        actions.append("Prepare personalized appointment offer")
    if form_abandoned:
        actions.append("Send form completion reminder with incentive")
    if days_since_created > 7 and emails_opened == 0:
        actions.append("Try alternative communication channel (SMS or phone)")
    if probability < 0.3:
        actions.append("Add to long-term nurture sequence")
        actions.append("Consider re-engagement campaign in 30 days")

    return ConversionPrediction(
        lead_id=lead_id,
        probability=probability,
        confidence=0.8 if probability >= 0.5 else 0.6,
        factors=factors,
        estimated_time_to_convert=estimate_time_to_convert(probability),
        estimated_lifetime_value=round(probability * config.average_patient_value),
        recommended_actions=actions,
    )
