# FILE: portrait_backend/services/prompt_builder.py
"""
Prompt construction for portrait generation

Four variants (basic, detailed, technical, creative) are produced from the
same options; the orchestrator sends the detailed one unless the caller
supplies an override.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from portrait_backend.models.portrait import (
    Background, CustomizationOptions, Industry, Mood, Style, UseCase
)

logger = logging.getLogger(__name__)


STYLE_DESCRIPTIONS: Dict[Style, Dict[str, str]] = {
    Style.PROFESSIONAL: {
        "attire": "professional business attire",
        "expression": "confident, approachable expression",
        "styling": "clean, polished look with modern styling",
        "posture": "upright, professional posture",
    },
    Style.CASUAL: {
        "attire": "smart casual attire",
        "expression": "friendly, approachable expression",
        "styling": "modern, relaxed professional styling",
        "posture": "natural, comfortable posture",
    },
    Style.EXECUTIVE: {
        "attire": "executive-level professional attire",
        "expression": "authoritative, confident expression",
        "styling": "sophisticated, high-end professional styling",
        "posture": "commanding, authoritative posture",
    },
    Style.CREATIVE: {
        "attire": "creative professional attire",
        "expression": "innovative, artistic expression",
        "styling": "contemporary, creative professional styling",
        "posture": "dynamic, creative posture",
    },
}

BACKGROUND_DESCRIPTIONS: Dict[Background, Dict[str, str]] = {
    Background.OFFICE: {
        "setting": "professional office setting",
        "elements": "modern furniture, clean lines, corporate environment",
        "lighting": "professional office lighting with natural light",
        "mood": "business-focused, productive atmosphere",
    },
    Background.STUDIO: {
        "setting": "clean, minimalist studio background",
        "elements": "neutral backdrop, professional studio setup",
        "lighting": "soft, even studio lighting",
        "mood": "clean, professional, focused",
    },
    Background.OUTDOOR: {
        "setting": "outdoor professional setting",
        "elements": "natural environment, architectural elements",
        "lighting": "natural lighting with professional quality",
        "mood": "fresh, approachable, natural",
    },
    Background.CONFERENCE: {
        "setting": "conference room with modern corporate environment",
        "elements": "meeting room furniture, presentation equipment",
        "lighting": "professional conference room lighting",
        "mood": "collaborative, professional, meeting-ready",
    },
}

INDUSTRY_CONTEXTS: Dict[Industry, str] = {
    Industry.TECHNOLOGY: "tech industry professional, innovative, modern",
    Industry.FINANCE: "financial services professional, trustworthy, analytical",
    Industry.HEALTHCARE: "healthcare professional, caring, knowledgeable",
    Industry.LEGAL: "legal professional, authoritative, trustworthy",
    Industry.EDUCATION: "educational professional, approachable, knowledgeable",
    Industry.CONSULTING: "consulting professional, analytical, strategic",
    Industry.MARKETING: "marketing professional, creative, dynamic",
    Industry.SALES: "sales professional, confident, persuasive",
    Industry.GENERAL: "business professional, versatile, competent",
}

USE_CASE_MODIFIERS: Dict[UseCase, str] = {
    UseCase.LINKEDIN: "Optimized for LinkedIn profile - professional, approachable, trustworthy",
    UseCase.BUSINESS_CARD: "Optimized for business card - clear, professional, memorable",
    UseCase.WEBSITE: "Optimized for website - engaging, professional, brand-appropriate",
    UseCase.PRESENTATION: "Optimized for presentations - confident, authoritative, clear",
    UseCase.GENERAL: "General professional use - versatile, appropriate for multiple contexts",
}

# Every enum member must have a descriptor
for _table, _enum in (
    (STYLE_DESCRIPTIONS, Style),
    (BACKGROUND_DESCRIPTIONS, Background),
    (INDUSTRY_CONTEXTS, Industry),
    (USE_CASE_MODIFIERS, UseCase),
):
    _missing = set(_enum) - set(_table)
    if _missing:
        raise RuntimeError(f"Prompt table for {_enum.__name__} is missing {sorted(m.value for m in _missing)}")

BLOCKED_PROMPT_KEYWORDS = [
    "nude", "naked", "sexual", "explicit", "inappropriate",
    "violence", "weapon", "drug", "illegal",
]
MAX_PROMPT_LENGTH = 2000
MIN_PROMPT_LENGTH = 50


@dataclass(frozen=True)
class PromptContext:
    """Fully resolved prompt inputs (raw strings until validated)"""
    style: str
    background: str
    industry: str = Industry.GENERAL.value
    mood: str = Mood.CONFIDENT.value
    lighting: str = "professional"
    composition: str = "head-and-shoulders"
    additional_requirements: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PromptVariations:
    basic: str
    detailed: str
    technical: str
    creative: str


def build_context(options: CustomizationOptions, context: Optional[Dict[str, Any]] = None) -> PromptContext:
    """Merge options with optional context overrides, applying defaults"""
    context = context or {}
    requirements = context.get("additional_requirements")
    if requirements is None:
        requirements = list(options.additional_requirements)

    return PromptContext(
        style=options.style,
        background=options.background,
        industry=context.get("industry") or options.industry or Industry.GENERAL.value,
        mood=context.get("mood") or options.mood or Mood.CONFIDENT.value,
        lighting=context.get("lighting") or "professional",
        composition=context.get("composition") or "head-and-shoulders",
        additional_requirements=list(requirements),
    )


def validate_context(context: PromptContext) -> Dict[str, Any]:
    """
    Check every enum-valued field of the context.

    Returns {is_valid, errors} with one error per offending field.
    """
    errors: List[str] = []

    if context.style not in Style._value2member_map_:
        errors.append(f"Invalid style: {context.style}")
    if context.background not in Background._value2member_map_:
        errors.append(f"Invalid background: {context.background}")
    if context.industry not in Industry._value2member_map_:
        errors.append(f"Invalid industry: {context.industry}")
    if context.mood not in Mood._value2member_map_:
        errors.append(f"Invalid mood: {context.mood}")

    return {
        "is_valid": len(errors) == 0,
        "errors": errors,
    }


def _descriptors(context: PromptContext):
    result = validate_context(context)
    if not result["is_valid"]:
        raise ValueError(f"Invalid prompt context: {', '.join(result['errors'])}")
    return (
        STYLE_DESCRIPTIONS[Style(context.style)],
        BACKGROUND_DESCRIPTIONS[Background(context.background)],
        INDUSTRY_CONTEXTS[Industry(context.industry)],
    )


def build_basic_prompt(context: PromptContext) -> str:
    style, bg, industry = _descriptors(context)
    return (
        "Transform this photo into a professional portrait.\n"
        "\n"
        f"Style: {style['attire']}, {style['expression']}\n"
        f"Background: {bg['setting']} with {bg['lighting']}\n"
        f"Industry: {industry}\n"
        "\n"
        "Generate a high-quality professional portrait suitable for business use."
    )


def build_detailed_prompt(context: PromptContext) -> str:
    style, bg, industry = _descriptors(context)
    lines = [
        "Transform this photo into a high-quality professional portrait.",
        "",
        "REQUIREMENTS:",
        f"- {style['attire']} with {style['styling']}",
        f"- {style['expression']} and {style['posture']}",
        f"- Background: {bg['setting']} featuring {bg['elements']}",
        f"- Lighting: {bg['lighting']} creating a {bg['mood']} atmosphere",
        f"- Industry context: {industry}",
        "- High resolution with sharp details and professional color grading",
        "- Maintain the person's facial features and identity",
        "- Remove distracting elements from the original background",
        "- Ensure the portrait looks natural and professional",
        "- Suitable for business cards, LinkedIn profiles, and professional use",
        "",
        f"COMPOSITION: {context.composition}",
        f"MOOD: {context.mood}",
        f"LIGHTING: {context.lighting}",
    ]

    if context.additional_requirements:
        lines.append("")
        lines.append("ADDITIONAL REQUIREMENTS:")
        lines.extend(f"- {req}" for req in context.additional_requirements)

    lines.append("")
    lines.append(
        "Generate a professional portrait that maintains the person's likeness "
        "while creating a polished, business-ready image."
    )
    return "\n".join(lines)


def build_technical_prompt(context: PromptContext) -> str:
    style, bg, _ = _descriptors(context)
    return "\n".join([
        "PROFESSIONAL PORTRAIT GENERATION SPECIFICATIONS:",
        "",
        "INPUT ANALYSIS:",
        "- Maintain facial features and identity",
        "- Preserve natural skin tone and texture",
        "- Keep authentic facial expressions",
        "",
        "STYLING SPECIFICATIONS:",
        f"- Attire: {style['attire']}",
        f"- Expression: {style['expression']}",
        f"- Styling: {style['styling']}",
        f"- Posture: {style['posture']}",
        "",
        "BACKGROUND SPECIFICATIONS:",
        f"- Setting: {bg['setting']}",
        f"- Elements: {bg['elements']}",
        f"- Lighting: {bg['lighting']}",
        f"- Mood: {bg['mood']}",
        "",
        "TECHNICAL REQUIREMENTS:",
        "- Resolution: High resolution with sharp details",
        "- Color grading: Professional, natural skin tones",
        "- Lighting: Even, professional lighting without harsh shadows",
        f"- Composition: {context.composition} framing",
        "- Background: Clean, uncluttered, professional",
        "- Retouching: Subtle, natural-looking enhancements",
        "",
        "OUTPUT SPECIFICATIONS:",
        "- Format: High-quality digital image",
        "- Use case: Business cards, LinkedIn, professional profiles",
        f"- Industry: {context.industry}",
        "",
        "Generate a technically precise professional portrait meeting all specifications.",
    ])


def build_creative_prompt(context: PromptContext) -> str:
    style, bg, _ = _descriptors(context)
    return "\n".join([
        "Create an innovative professional portrait that balances creativity with business appropriateness.",
        "",
        "CREATIVE VISION:",
        f"- Style: {style['attire']} with a {style['expression']}",
        f"- Background: {bg['setting']} that enhances the {bg['mood']} atmosphere",
        f"- Lighting: {bg['lighting']} for a {context.mood} mood",
        f"- Industry: {context.industry} professional",
        "",
        "ARTISTIC ELEMENTS:",
        "- Modern, contemporary approach to professional portraiture",
        "- Creative use of lighting and composition",
        "- Innovative but appropriate styling",
        "- Dynamic yet professional presentation",
        "",
        "TECHNICAL EXCELLENCE:",
        "- High resolution with artistic detail",
        "- Professional color grading with creative flair",
        "- Maintain facial features while enhancing presentation",
        "- Clean, purposeful background design",
        "",
        "BALANCE:",
        "- Creative expression within professional boundaries",
        "- Innovation that enhances rather than distracts",
        "- Artistic quality that serves business purposes",
        "- Modern approach to traditional professional portraiture",
        "",
        "Generate a creative professional portrait that stands out while maintaining business appropriateness.",
    ])


def build_prompt(
    options: CustomizationOptions,
    context: Optional[Dict[str, Any]] = None
) -> PromptVariations:
    """
    Build all four prompt variants for the given options.

    Raises ValueError when the options contain unknown enum values; callers
    that want the full error list should run validate_context first.
    """
    full_context = build_context(options, context)
    return PromptVariations(
        basic=build_basic_prompt(full_context),
        detailed=build_detailed_prompt(full_context),
        technical=build_technical_prompt(full_context),
        creative=build_creative_prompt(full_context),
    )


def get_prompt_for_use_case(use_case: str, context: PromptContext) -> str:
    """Detailed prompt with the fixed use-case phrase appended"""
    base_prompt = build_detailed_prompt(context)
    modifier = USE_CASE_MODIFIERS[UseCase(use_case)]
    return f"{base_prompt}\n\nUSE CASE: {modifier}"


def validate_prompt(prompt: str) -> Dict[str, Any]:
    """Safety and length check for caller-supplied prompts"""
    errors: List[str] = []
    warnings: List[str] = []

    lower_prompt = prompt.lower()
    for keyword in BLOCKED_PROMPT_KEYWORDS:
        if keyword in lower_prompt:
            errors.append(f"Inappropriate keyword detected: {keyword}")

    if len(prompt) > MAX_PROMPT_LENGTH:
        warnings.append("Prompt is very long, may affect generation quality")
    if len(prompt) < MIN_PROMPT_LENGTH:
        warnings.append("Prompt is very short, may not provide enough detail")

    return {
        "is_valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }
