"""Nurture sequence catalog and selection.

The catalog is built once at import and never mutated. Each template is an
ordered tuple of email/SMS steps; ``delay_days`` is measured from the moment the
previous step advanced.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from ..exceptions import NotFoundError
from .templates import TOKENS, find_tokens

CATALOG_VERSION = "2024.1"


class Channel(Enum):
    EMAIL = "email"
    SMS = "sms"


class ContentType(Enum):
    EDUCATIONAL = "educational"
    PROMOTIONAL = "promotional"
    TESTIMONIAL = "testimonial"
    OFFER = "offer"
    REMINDER = "reminder"


@dataclass(frozen=True)
class EmailStep:
    """An email touch in a sequence."""

    step_number: int
    delay_days: int
    subject: str
    body: str
    content_type: ContentType

    @property
    def channel(self) -> Channel:
        return Channel.EMAIL


@dataclass(frozen=True)
class SmsStep:
    """A text-message touch in a sequence. SMS has no subject line."""

    step_number: int
    delay_days: int
    body: str
    content_type: ContentType

    @property
    def channel(self) -> Channel:
        return Channel.SMS

    @property
    def subject(self) -> None:
        return None


NurtureStep = Union[EmailStep, SmsStep]


@dataclass(frozen=True)
class NurtureSequenceTemplate:
    """A named, ordered outreach campaign."""

    id: str
    name: str
    description: str
    target_audience: str
    average_conversion_rate: float
    steps: Tuple[NurtureStep, ...]

    def __post_init__(self):
        numbers = [step.step_number for step in self.steps]
        if numbers != list(range(1, len(self.steps) + 1)):
            raise ValueError(f"Sequence {self.id} steps must be numbered 1..{len(self.steps)}")
        for step in self.steps:
            texts = [step.body] + ([step.subject] if step.subject else [])
            for text in texts:
                unknown = [t for t in find_tokens(text) if t not in TOKENS]
                if unknown:
                    raise ValueError(f"Sequence {self.id} step {step.step_number} uses unknown tokens {unknown}")

    @property
    def length(self) -> int:
        return len(self.steps)

    def get_step(self, step_number: int) -> NurtureStep:
        if not 1 <= step_number <= len(self.steps):
            raise NotFoundError(f"Sequence {self.id} has no step {step_number}")
        return self.steps[step_number - 1]


@dataclass(frozen=True)
class SequenceCatalog:
    """Versioned, read-only set of sequence templates."""

    version: str
    templates: Tuple[NurtureSequenceTemplate, ...]

    def get(self, sequence_id: str) -> NurtureSequenceTemplate:
        for template in self.templates:
            if template.id == sequence_id:
                return template
        raise NotFoundError(f"Nurture sequence not found: {sequence_id}")

    @property
    def ids(self) -> List[str]:
        return [t.id for t in self.templates]

    def describe(self) -> List[Dict[str, object]]:
        """Catalog summary for listings."""
        return [
            {
                "id": t.id,
                "name": t.name,
                "description": t.description,
                "target_audience": t.target_audience,
                "steps": t.length,
                "average_conversion_rate": t.average_conversion_rate,
                "channels": sorted({s.channel.value for s in t.steps}),
            }
            for t in self.templates
        ]


AWARENESS = NurtureSequenceTemplate(
    id="awareness",
    name="Awareness Sequence",
    description="Educational content about chiropractic care benefits for new leads",
    target_audience="New leads with low engagement",
    average_conversion_rate=0.15,
    steps=(
        EmailStep(
            1, 0,
            "Welcome! Here's what chiropractic care can do for you",
            "Hi {{firstName}},\n\n"
            "Thank you for your interest in {{practiceName}}. We're excited to share how chiropractic "
            "care can help you live a healthier, pain-free life.\n\n"
            "Chiropractic care offers:\n"
            "- Natural pain relief without medications\n"
            "- Improved mobility and flexibility\n"
            "- Better posture and spinal alignment\n"
            "- Enhanced overall wellness\n\n"
            "Would you like to learn more? Reply to this email or call us at {{practicePhone}}.\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.EDUCATIONAL,
        ),
        EmailStep(
            2, 3,
            "Common conditions we treat",
            "Hi {{firstName}},\n\n"
            "Did you know chiropractic care can help with:\n\n"
            "• Back pain and sciatica\n"
            "• Neck pain and headaches\n"
            "• Sports injuries\n"
            "• Work-related strain\n"
            "• Poor posture\n\n"
            "Many of our patients find relief after just a few visits. If you're experiencing any of "
            "these issues, we're here to help.\n\n"
            "Schedule a consultation: {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.EDUCATIONAL,
        ),
        SmsStep(
            3, 7,
            "Hi {{firstName}}! Quick reminder from {{practiceName}} - we offer free 15-min consultations "
            "to discuss your health goals. Interested? Reply YES to learn more!",
            ContentType.OFFER,
        ),
        EmailStep(
            4, 10,
            "See what our patients are saying",
            "Hi {{firstName}},\n\n"
            "Don't just take our word for it! Here's what our patients say:\n\n"
            "\"After years of back pain, I finally found relief. The team at {{practiceName}} changed "
            "my life!\" - Sarah M.\n\n"
            "\"I was skeptical at first, but now I can't imagine life without regular adjustments.\" "
            "- Mike T.\n\n"
            "Ready to start your journey? Book your first appointment today: {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.TESTIMONIAL,
        ),
        EmailStep(
            5, 14,
            "Special offer just for you",
            "Hi {{firstName}},\n\n"
            "We'd love to welcome you to {{practiceName}}! For a limited time, new patients receive:\n\n"
            "✓ Free initial consultation\n"
            "✓ Comprehensive health assessment\n"
            "✓ Personalized treatment plan\n\n"
            "Don't miss this opportunity to invest in your health.\n\n"
            "Book now: {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.OFFER,
        ),
    ),
)

CONSIDERATION = NurtureSequenceTemplate(
    id="consideration",
    name="Consideration Sequence",
    description="Case studies and testimonials for engaged leads",
    target_audience="Leads showing interest but not yet converted",
    average_conversion_rate=0.25,
    steps=(
        EmailStep(
            1, 0,
            "Your personalized care plan awaits",
            "Hi {{firstName}},\n\n"
            "Thank you for exploring {{practiceName}}! Based on your interest, we've put together some "
            "resources just for you.\n\n"
            "What to expect at your first visit:\n"
            "1. Health history review\n"
            "2. Physical examination\n"
            "3. Digital X-rays (if needed)\n"
            "4. Treatment plan discussion\n\n"
            "Most patients feel improvement within the first few visits. Ready to get started?\n\n"
            "Book your appointment: {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.EDUCATIONAL,
        ),
        SmsStep(
            2, 2,
            "Hi {{firstName}}, noticed you've been looking into chiropractic care. Have questions? "
            "Text back and our team will help! - {{practiceName}}",
            ContentType.REMINDER,
        ),
        EmailStep(
            3, 5,
            "Real results: Patient success story",
            "Hi {{firstName}},\n\n"
            "Meet John, a 45-year-old office worker who suffered from chronic lower back pain for over "
            "5 years.\n\n"
            "After starting treatment at {{practiceName}}:\n"
            "• Week 1: 30% pain reduction\n"
            "• Week 4: Able to sit without discomfort\n"
            "• Week 8: Back to playing golf!\n\n"
            "\"I wish I had come in sooner,\" John says.\n\n"
            "Your success story could be next. Schedule your first appointment: {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.TESTIMONIAL,
        ),
        EmailStep(
            4, 8,
            "Your questions answered",
            "Hi {{firstName}},\n\n"
            "Still considering chiropractic care? Here are answers to common questions:\n\n"
            "Q: Is chiropractic treatment safe?\n"
            "A: Yes! Chiropractic care is one of the safest drug-free, non-invasive therapies available.\n\n"
            "Q: How many visits will I need?\n"
            "A: This varies by condition. Most patients see improvement in 4-8 visits.\n\n"
            "Q: Do you accept my insurance?\n"
            "A: We accept most major insurance plans. Contact us to verify your coverage.\n\n"
            "Ready to take the next step? {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.EDUCATIONAL,
        ),
    ),
)

DECISION = NurtureSequenceTemplate(
    id="decision",
    name="Decision Sequence",
    description="Special offers and appointment incentives for ready-to-book leads",
    target_audience="Hot leads ready to convert",
    average_conversion_rate=0.45,
    steps=(
        EmailStep(
            1, 0,
            "We're holding a spot for you",
            "Hi {{firstName}},\n\n"
            "We noticed you've been exploring treatment options at {{practiceName}}. Great news - we "
            "have availability this week!\n\n"
            "Book now to secure your preferred time: {{bookingLink}}\n\n"
            "Limited spots available!\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.OFFER,
        ),
        SmsStep(
            2, 1,
            "{{firstName}}, your exclusive appointment slot is waiting! Book today and get a FREE "
            "consultation. Call {{practicePhone}} or book online.",
            ContentType.OFFER,
        ),
        EmailStep(
            3, 3,
            "Last chance: Special offer expires soon",
            "Hi {{firstName}},\n\n"
            "This is your final reminder about our new patient special:\n\n"
            "- FREE initial consultation\n"
            "- Complimentary posture analysis\n"
            "- 10% off your first treatment\n\n"
            "Offer expires in 48 hours!\n\n"
            "Don't let this opportunity pass: {{bookingLink}}\n\n"
            "We hope to see you soon!\n\n"
            "{{practiceName}} Team",
            ContentType.OFFER,
        ),
    ),
)

RE_ENGAGEMENT = NurtureSequenceTemplate(
    id="re_engagement",
    name="Re-engagement Sequence",
    description="Win-back campaign for cold or inactive leads",
    target_audience="Leads who have gone cold or stopped engaging",
    average_conversion_rate=0.10,
    steps=(
        EmailStep(
            1, 0,
            "We miss you, {{firstName}}!",
            "Hi {{firstName}},\n\n"
            "It's been a while since we heard from you, and we wanted to check in.\n\n"
            "Life gets busy, but your health shouldn't wait. If you're still dealing with:\n"
            "• Persistent pain\n"
            "• Limited mobility\n"
            "• Poor sleep due to discomfort\n\n"
            "...we're here to help when you're ready.\n\n"
            "As a returning visitor, enjoy 15% off your first treatment.\n\n"
            "Book when you're ready: {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.PROMOTIONAL,
        ),
        EmailStep(
            2, 7,
            "Something new at {{practiceName}}",
            "Hi {{firstName}},\n\n"
            "Since you last visited our website, we've added:\n\n"
            "- Extended evening hours\n"
            "- Online booking for your convenience\n"
            "- New treatment modalities\n\n"
            "We'd love to show you what's new. Your first visit includes a comprehensive assessment at "
            "no extra charge.\n\n"
            "See you soon? {{bookingLink}}\n\n"
            "Best,\n{{practiceName}} Team",
            ContentType.PROMOTIONAL,
        ),
        SmsStep(
            3, 14,
            "{{firstName}}, we haven't forgotten about you! Ready to feel better? Reply READY and we'll "
            "call you to schedule. - {{practiceName}}",
            ContentType.REMINDER,
        ),
    ),
)

SEQUENCE_CATALOG = SequenceCatalog(
    version=CATALOG_VERSION,
    templates=(AWARENESS, CONSIDERATION, DECISION, RE_ENGAGEMENT),
)


def select_sequence(
    quality: int,
    urgency: int,
    probability: float,
    days_since_created: int,
    engagement_score: int,
    catalog: SequenceCatalog = SEQUENCE_CATALOG,
) -> NurtureSequenceTemplate:
    """Pick the campaign for a lead. First matching rule wins."""
    if days_since_created > 21 and engagement_score < 20:
        return catalog.get("re_engagement")
    if quality >= 70 and urgency >= 50:
        return catalog.get("decision")
    if quality >= 40 or probability >= 0.3:
        return catalog.get("consideration")
    return catalog.get("awareness")


def starting_step(
    selected: NurtureSequenceTemplate,
    active_sequence_id: Optional[str],
    current_step_number: Optional[int],
) -> int:
    """Continue an in-progress run of the same sequence, otherwise start over."""
    if active_sequence_id == selected.id and current_step_number:
        return min(current_step_number, selected.length)
    return 1
