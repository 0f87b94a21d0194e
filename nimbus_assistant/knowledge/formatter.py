"""
Response Formatter

Wraps plain answer text in a role-specific layout: a heading, the cleaned
body and a closing list whose title depends on the role. Text that already
carries structure (a markdown heading or a bullet) is returned unchanged, so
formatting a formatted answer is a no-op.
"""

import re
from typing import Optional, Tuple, Union

from nimbus_assistant.roles import Role

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s", re.MULTILINE)
_LEADING_MARKER_RE = re.compile(r"^\s*(?:[-*•]\s+)+")

BULLET = "•"

ROLE_TEMPLATES = {
    Role.TECHNICAL: (
        "Technical Overview",
        "Additional Resources",
        (
            "Technical documentation in the NimbusERP developer portal",
            "API reference and integration guides",
            "Open a ticket with the engineering support desk",
        ),
    ),
    Role.BUSINESS: (
        "Business Overview",
        "Next Steps",
        (
            "Review how this fits your current workflows",
            "Schedule a walkthrough with your account manager",
            "Compare plan tiers for your team size",
        ),
    ),
    Role.CUSTOMER: (
        "Here's What I Found",
        "Need More Help?",
        (
            "Ask me a follow-up question",
            "Browse the NimbusERP help center",
            "Contact our support team any time",
        ),
    ),
}


def is_structured(text: str) -> bool:
    """True when the text already has a heading line or a bullet."""
    return bool(_HEADING_RE.search(text)) or BULLET in text


def clean_lines(text: str) -> str:
    """Strip leading list markers (a dash, asterisk or bullet followed by whitespace)."""
    return "\n".join(_LEADING_MARKER_RE.sub("", line) for line in text.strip().splitlines())


def role_template(role: Union[str, Role, None]) -> Tuple[str, str, Tuple[str, ...]]:
    return ROLE_TEMPLATES[Role.parse(role)]


def format_response(
    text: str,
    role: Union[str, Role, None] = Role.CUSTOMER,
    source: Optional[str] = None
) -> str:
    """
    Render answer text for display.

    Args:
        text: Answer text, typically a MatchResult's response_text
        role: Role of the assistant persona (unknown values act as customer)
        source: Optional source label shown under the heading

    Returns:
        The text unchanged when it is blank or already structured,
        otherwise the role-specific layout
    """
    if not text or not text.strip() or is_structured(text):
        return text

    heading, closing_title, closing_items = role_template(role)

    parts = [f"## {heading}"]
    if source:
        parts.append(f"_Source: {source}_")
    parts.append("")
    parts.append(clean_lines(text))
    parts.append("")
    parts.append(f"### {closing_title}")
    parts.extend(f"{BULLET} {item}" for item in closing_items)
    return "\n".join(parts)
