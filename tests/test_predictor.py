"""Tests for recommendations and conversion prediction detail."""

from practice_growth.core.config import ScoringConfig
from practice_growth.core.predictor import (
    age_decay,
    estimate_time_to_convert,
    explain_prediction,
    recommend,
)


class TestRecommend:
    """First matching rule wins."""

    def test_hot(self):
        assert recommend(70, 60, 0.5, 0).tier == "hot"

    def test_high_value(self):
        assert recommend(75, 10, 0.4, 0).tier == "high_value"

    def test_urgent(self):
        assert recommend(30, 65, 0.2, 0).tier == "urgent"

    def test_warm_by_probability(self):
        assert recommend(20, 10, 0.3, 30).tier == "warm"

    def test_aging(self):
        rec = recommend(20, 10, 0.1, 15)
        assert rec.tier == "aging"
        assert rec.suggested_action == "Send re-engagement email with special offer"

    def test_new(self):
        assert recommend(20, 10, 0.1, 3).tier == "new"


class TestPrediction:
    """Tests for explain_prediction."""

    def test_age_decay_steps(self):
        assert age_decay(7) == 1.0
        assert age_decay(8) == 0.85
        assert age_decay(15) == 0.7
        assert age_decay(31) == 0.5

    def test_time_to_convert_bands(self):
        assert estimate_time_to_convert(0.7) == "1-3 days"
        assert estimate_time_to_convert(0.5) == "1-2 weeks"
        assert estimate_time_to_convert(0.3) == "2-4 weeks"
        assert estimate_time_to_convert(0.1) == "4+ weeks or unlikely"

    def test_strong_lead(self):
        factors = {
            "visit_frequency": 20,
            "source_quality": 20,
            "email_engagement": 15,
            "form_friction": 10,
        }
        prediction = explain_prediction(7, 0.8, factors, 1, True, True, 3)
        names = [f.factor for f in prediction.factors]
        assert names == ["Website Engagement", "Lead Source", "Email Engagement", "Form Interaction"]
        assert all(f.impact == "positive" for f in prediction.factors)
        assert prediction.confidence == 0.8
        assert prediction.estimated_lifetime_value == 2000
        assert prediction.recommended_actions == [
            "Schedule immediate phone call",
            "Prepare personalized appointment offer",
            "Send form completion reminder with incentive",
        ]

    def test_weak_old_lead(self):
        prediction = explain_prediction(8, 0.1, {}, 20, False, False, 0)
        negatives = {f.factor: f.weight for f in prediction.factors}
        assert negatives == {"Lead Age": 20 / 30, "Contact Information": 0.6}
        assert prediction.confidence == 0.6
        assert prediction.recommended_actions == [
            "Try alternative communication channel (SMS or phone)",
            "Add to long-term nurture sequence",
            "Consider re-engagement campaign in 30 days",
        ]

    def test_lifetime_value_uses_config(self):
        config = ScoringConfig(average_patient_value=4000)
        prediction = explain_prediction(1, 0.25, {}, 0, True, False, 0, config)
        assert prediction.estimated_lifetime_value == 1000
