"""Lightweight sentiment and urgency classification of free-text replies."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple

POSITIVE_WORDS = ["yes", "interested", "ready", "book", "schedule", "appointment", "great", "thanks", "perfect", "love"]
NEGATIVE_WORDS = ["not interested", "unsubscribe", "no", "stop", "remove", "cancel", "spam"]
URGENT_WORDS = ["pain", "hurt", "urgent", "asap", "soon", "today", "tomorrow", "emergency"]


@dataclass(frozen=True)
class ResponseAnalysis:
    """Sentiment (positive/neutral/negative) and urgency (high/medium/low)."""

    sentiment: str
    urgency: str

    @property
    def is_positive(self) -> bool:
        return self.sentiment == "positive"


NEUTRAL_ANALYSIS = ResponseAnalysis("neutral", "medium")


class ResponseClassifier(ABC):
    """Classifies lead replies. Swap in a model-backed implementation as needed."""

    @abstractmethod
    def classify(self, content: str) -> ResponseAnalysis:
        """Classify a reply's sentiment and urgency."""
        pass


class KeywordResponseClassifier(ResponseClassifier):
    """Keyword-counting baseline classifier.

    Matches whole words only. Negative phrases are removed before positive
    words are counted so "not interested" does not also count as interest.
    """

    def __init__(
        self,
        positive_words: List[str] = None,
        negative_words: List[str] = None,
        urgent_words: List[str] = None,
    ):
        self.positive_words = positive_words or POSITIVE_WORDS
        self.negative_words = negative_words or NEGATIVE_WORDS
        self.urgent_words = urgent_words or URGENT_WORDS

    @staticmethod
    def _pattern(phrase: str) -> re.Pattern:
        return re.compile(r'\b' + re.escape(phrase) + r'\b')

    def _consume(self, text: str, phrases: List[str]) -> Tuple[int, str]:
        """Count phrases present in text and blank them out."""
        count = 0
        for phrase in phrases:
            pattern = self._pattern(phrase)
            if pattern.search(text):
                count += 1
                text = pattern.sub(" ", text)
        return count, text

    def _count(self, text: str, phrases: List[str]) -> int:
        return sum(1 for phrase in phrases if self._pattern(phrase).search(text))

    def classify(self, content: str) -> ResponseAnalysis:
        text = content.lower()

        negative, remaining = self._consume(text, self.negative_words)
        positive = self._count(remaining, self.positive_words)
        urgent = self._count(text, self.urgent_words)

        if positive > negative:
            sentiment = "positive"
        elif negative > positive:
            sentiment = "negative"
        else:
            sentiment = "neutral"

        if urgent >= 2 or (positive >= 2 and urgent >= 1):
            urgency = "high"
        elif positive >= 1 or urgent >= 1:
            urgency = "medium"
        else:
            urgency = "low"

        return ResponseAnalysis(sentiment, urgency)
