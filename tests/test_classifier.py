"""Tests for reply classification."""

import pytest

from practice_growth.core.classifier import KeywordResponseClassifier


class TestKeywordResponseClassifier:

    def setup_method(self):
        self.classifier = KeywordResponseClassifier()

    @pytest.mark.parametrize("text,sentiment,urgency", [
        ("Yes, I'd love to book an appointment", "positive", "medium"),
        ("Yes please, my back is in pain and I need help today", "positive", "high"),
        ("Please stop texting me", "negative", "low"),
        ("I am not interested", "negative", "low"),
        ("What are your hours?", "neutral", "low"),
        ("Is there anything soon?", "neutral", "medium"),
    ])
    def test_classify(self, text, sentiment, urgency):
        analysis = self.classifier.classify(text)
        assert analysis.sentiment == sentiment
        assert analysis.urgency == urgency

    def test_whole_words_only(self):
        """'no' inside another word is not negative."""
        assert self.classifier.classify("I know my schedule").sentiment == "positive"

    def test_negation_not_counted_as_interest(self):
        analysis = self.classifier.classify("not interested")
        assert analysis.sentiment == "negative"
        assert not analysis.is_positive

    def test_two_urgent_words_are_high(self):
        assert self.classifier.classify("urgent, it hurts, please call asap").urgency == "high"

    def test_custom_word_lists(self):
        classifier = KeywordResponseClassifier(positive_words=["sure"])
        assert classifier.classify("sure thing").sentiment == "positive"
