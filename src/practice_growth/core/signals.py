"""Intent signals: human-readable observations derived from lead behavior.

Signals never affect scores. They explain why a lead looks the way it does
and feed recommendation text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class SignalCategory(Enum):
    """Categories of intent signals."""

    BEHAVIOR = "behavior"
    ENGAGEMENT = "engagement"
    PAGE_INTEREST = "page_interest"


@dataclass
class IntentSignal:
    """A single explanatory observation about a lead."""

    category: SignalCategory
    description: str

    def __str__(self) -> str:
        return self.description


@dataclass
class PageSignal:
    """Keywords in the last viewed page that reveal what the lead is researching."""

    keywords: List[str]
    description: str

    def matches(self, page: str) -> bool:
        page = page.lower()
        return any(keyword in page for keyword in self.keywords)


PAGE_SIGNALS: List[PageSignal] = [
    PageSignal(["pricing", "cost"], "Viewed pricing page - evaluating costs"),
    PageSignal(["insurance", "coverage"], "Viewed insurance page - checking coverage"),
    PageSignal(["appointment", "schedule", "book"], "Viewed scheduling page - ready to book"),
    PageSignal(["service", "treatment"], "Viewed services page - evaluating treatment options"),
    PageSignal(["testimonial", "review"], "Viewed reviews - seeking social proof"),
]


def detect_intent_signals(
    website_visits: int,
    page_views: int,
    time_on_site_seconds: int,
    form_abandoned: bool,
    emails_opened: int,
    links_clicked: int,
    last_page_viewed: Optional[str] = None,
) -> List[IntentSignal]:
    """Derive intent signals from raw counters."""
    signals = []

    if website_visits >= 3:
        signals.append(IntentSignal(SignalCategory.BEHAVIOR, "Multiple site visits indicate active interest"))
    if page_views >= 5:
        signals.append(IntentSignal(SignalCategory.BEHAVIOR, "Extensive page browsing shows research behavior"))
    if time_on_site_seconds >= 300:
        signals.append(IntentSignal(SignalCategory.BEHAVIOR, "Long session time indicates serious consideration"))
    if form_abandoned:
        signals.append(IntentSignal(
            SignalCategory.BEHAVIOR,
            "Form started but not completed - high intent with friction",
        ))
    if emails_opened >= 2 and links_clicked >= 1:
        signals.append(IntentSignal(SignalCategory.ENGAGEMENT, "Email engagement shows ongoing interest"))

    if last_page_viewed:
        for page_signal in PAGE_SIGNALS:
            if page_signal.matches(last_page_viewed):
                signals.append(IntentSignal(SignalCategory.PAGE_INTEREST, page_signal.description))

    return signals
