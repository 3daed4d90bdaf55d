"""Token substitution for nurture content."""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

TOKENS = ("firstName", "lastName", "practiceName", "practicePhone", "bookingLink")
TOKEN_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class PracticeProfile:
    """Practice details substituted into outgoing content."""

    name: str = "Our Practice"
    phone: str = ""
    booking_link: str = "https://booking.practice.com"

    @classmethod
    def from_settings(cls, settings) -> "PracticeProfile":
        return cls(
            name=settings.practice_name,
            phone=settings.practice_phone,
            booking_link=settings.booking_link,
        )


def personalization(
    first_name: Optional[str],
    last_name: Optional[str],
    practice: PracticeProfile,
) -> Dict[str, str]:
    """Build the token values for one lead."""
    return {
        "firstName": first_name or "there",
        "lastName": last_name or "",
        "practiceName": practice.name,
        "practicePhone": practice.phone,
        "bookingLink": practice.booking_link,
    }


def find_tokens(text: str) -> List[str]:
    """All token names referenced in text."""
    return TOKEN_PATTERN.findall(text)


def find_unresolved_tokens(text: str) -> List[str]:
    """Tokens still present after rendering."""
    return [match.group(0) for match in TOKEN_PATTERN.finditer(text)]


def render_content(text: str, variables: Dict[str, str]) -> str:
    """Substitute known tokens verbatim.

    Unknown tokens are left in place and logged; they indicate a template
    defect rather than a reason to fail the send decision.
    """
    def replace(match):
        name = match.group(1)
        if name in TOKENS and name in variables:
            return variables[name]
        return match.group(0)

    rendered = TOKEN_PATTERN.sub(replace, text)
    unresolved = find_unresolved_tokens(rendered)
    if unresolved:
        logger.warning(f"Unresolved template tokens: {', '.join(unresolved)}")
    return rendered
