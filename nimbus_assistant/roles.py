"""
Assistant Roles

The assistant answers as one of three personas. The role decides the
generation prompt, the closing section added to knowledge-base answers and
the wording of status and apology messages.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class Role(str, Enum):
    TECHNICAL = "technical"
    BUSINESS = "business"
    CUSTOMER = "customer"

    @classmethod
    def parse(cls, value: Optional[Union[str, "Role"]], default: Optional["Role"] = None) -> "Role":
        """
        Resolve a role from its value or display title.

        Unknown or empty values fall back to `default` (customer when not given).
        """
        if isinstance(value, Role):
            return value
        fallback = default or cls.CUSTOMER
        if not value:
            return fallback
        key = value.strip().lower()
        for role in cls:
            if key == role.value or key == ROLE_PROFILES[role].title.lower():
                return role
        return fallback


@dataclass(frozen=True)
class RoleProfile:
    """
    Persona settings for one role.

    Attributes:
        role: Role this profile describes
        title: Display title
        description: Short description of the persona's focus
        default_message: Greeting shown when a conversation starts
        processing_message: Status text while an answer is being prepared
        expertise: Topics the persona covers
        tone: Overall tone of voice
        style: Writing style
        approach: How answers are framed
        structure: Outline the answers should follow
        max_length: Soft word limit for generated answers
    """
    role: Role
    title: str
    description: str
    default_message: str
    processing_message: str
    expertise: Tuple[str, ...]
    tone: str
    style: str
    approach: str
    structure: str
    max_length: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.role.value,
            "title": self.title,
            "description": self.description,
            "default_message": self.default_message,
            "processing_message": self.processing_message,
            "expertise": list(self.expertise),
            "personality": {"tone": self.tone, "style": self.style, "approach": self.approach},
            "response_format": {"structure": self.structure, "max_length": self.max_length},
        }


ROLE_PROFILES: Dict[Role, RoleProfile] = {
    Role.BUSINESS: RoleProfile(
        role=Role.BUSINESS,
        title="Business Support Specialist",
        description="Expert in product features, pricing, and workflow optimization",
        default_message="How can I help optimize your business processes today?",
        processing_message="Analyzing business requirements...",
        expertise=(
            "Business process optimization",
            "Workflow management",
            "Resource planning",
            "Cost analysis",
            "Performance metrics",
            "Strategic planning",
        ),
        tone="Professional and strategic",
        style="Analytical and solution-focused",
        approach="ROI-driven with emphasis on business value",
        structure="Context -> Analysis -> Recommendation",
        max_length=300,
    ),
    Role.TECHNICAL: RoleProfile(
        role=Role.TECHNICAL,
        title="Technical Support Engineer",
        description="Specialized in integrations, APIs, and technical troubleshooting",
        default_message="How can I assist with your technical implementation or troubleshooting needs?",
        processing_message="Analyzing technical specifications...",
        expertise=(
            "System troubleshooting",
            "Performance optimization",
            "Security configuration",
            "Data integration",
            "API implementation",
            "System maintenance",
        ),
        tone="Technical and precise",
        style="Detail-oriented and methodical",
        approach="Solution-driven with focus on best practices",
        structure="Issue -> Analysis -> Solution -> Prevention",
        max_length=400,
    ),
    Role.CUSTOMER: RoleProfile(
        role=Role.CUSTOMER,
        title="Customer Support Representative",
        description="Friendly assistance for general inquiries",
        default_message="How may I assist you with NimbusERP today?",
        processing_message="Understanding your request...",
        expertise=(
            "User guidance",
            "Feature explanation",
            "Basic troubleshooting",
            "Account management",
            "System navigation",
            "Best practices",
        ),
        tone="Friendly and approachable",
        style="Patient and understanding",
        approach="User-focused with emphasis on clarity",
        structure="Greeting -> Understanding -> Solution -> Follow-up",
        max_length=250,
    ),
}


def get_profile(role: Optional[Union[str, Role]]) -> RoleProfile:
    """Profile for a role value, title or Role; unknown values get the customer profile."""
    return ROLE_PROFILES[Role.parse(role)]
