"""Core scoring, prediction and lifecycle rules."""

from .scorer import LeadScorer, LeadCounters, ScoreFactorVector, ScoringResult, extract_factors, compute_urgency
from .signals import IntentSignal, SignalCategory, PAGE_SIGNALS, detect_intent_signals
from .predictor import (
    ConversionPrediction,
    PredictionFactor,
    Recommendation,
    conversion_probability,
    explain_prediction,
    recommend,
)
from .config import ScoringConfig, ScoringConfigManager
from .classifier import ResponseClassifier, KeywordResponseClassifier, ResponseAnalysis
from .lifecycle import TransitionTrigger, StatusChange, classify, transition

__all__ = [
    "LeadScorer",
    "LeadCounters",
    "ScoreFactorVector",
    "ScoringResult",
    "extract_factors",
    "compute_urgency",
    "IntentSignal",
    "SignalCategory",
    "PAGE_SIGNALS",
    "detect_intent_signals",
    "ConversionPrediction",
    "PredictionFactor",
    "Recommendation",
    "conversion_probability",
    "explain_prediction",
    "recommend",
    "ScoringConfig",
    "ScoringConfigManager",
    "ResponseClassifier",
    "KeywordResponseClassifier",
    "ResponseAnalysis",
    "TransitionTrigger",
    "StatusChange",
    "classify",
    "transition",
]
