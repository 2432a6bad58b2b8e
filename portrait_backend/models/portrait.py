# FILE: portrait_backend/models/portrait.py
"""
Portrait generation models: option enums and request bodies
"""
from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class SizeClass(str, Enum):
    PREVIEW = "preview"
    FULL = "full"


class QualityTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Background(str, Enum):
    OFFICE = "office"
    STUDIO = "studio"
    OUTDOOR = "outdoor"
    CONFERENCE = "conference"


class Style(str, Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    EXECUTIVE = "executive"
    CREATIVE = "creative"


class Industry(str, Enum):
    TECHNOLOGY = "technology"
    FINANCE = "finance"
    HEALTHCARE = "healthcare"
    LEGAL = "legal"
    EDUCATION = "education"
    CONSULTING = "consulting"
    MARKETING = "marketing"
    SALES = "sales"
    GENERAL = "general"


class Mood(str, Enum):
    CONFIDENT = "confident"
    FRIENDLY = "friendly"
    AUTHORITATIVE = "authoritative"
    APPROACHABLE = "approachable"


class UseCase(str, Enum):
    LINKEDIN = "linkedin"
    BUSINESS_CARD = "business-card"
    WEBSITE = "website"
    PRESENTATION = "presentation"
    GENERAL = "general"


class ImageDimensions(BaseModel):
    """Pixel dimensions reported by the uploader"""
    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)


class ImagePayload(BaseModel):
    """Uploaded photo as carried between wizard steps"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1, description="MIME type, e.g. image/jpeg")
    size: int = Field(..., ge=0, description="Byte size of the original file")
    dimensions: ImageDimensions
    base64_data: str = Field(..., alias="base64Data", min_length=1)
    preview: Optional[str] = None
    uploaded_at: Optional[str] = Field(default=None, alias="uploadedAt")


class CustomizationOptions(BaseModel):
    """
    User-chosen portrait options.

    Values are kept as plain strings here so unknown values reach
    validate_context and are reported together instead of one by one.
    """
    model_config = ConfigDict(populate_by_name=True)

    background: str = Field(..., min_length=1)
    style: str = Field(..., min_length=1)
    industry: Optional[str] = None
    mood: Optional[str] = None
    additional_requirements: List[str] = Field(default_factory=list, alias="additionalRequirements")

    @field_validator("additional_requirements", mode="before")
    @classmethod
    def normalize_requirements(cls, v: Union[str, List[str], None]):
        if v is None:
            return []
        if isinstance(v, str):
            return [v.strip()] if v.strip() else []
        return [item.strip() for item in v if isinstance(item, str) and item.strip()]


class PreviewGenerationRequest(BaseModel):
    """POST /api/generate-preview body"""
    model_config = ConfigDict(populate_by_name=True)

    image: ImagePayload
    options: CustomizationOptions
    prompt: Optional[str] = None
    use_case: Optional[str] = Field(default=None, alias="useCase")


class FullGenerationRequest(PreviewGenerationRequest):
    """POST /api/generate-full body (post-payment)"""
    payment_intent_id: str = Field(..., alias="paymentIntentId", min_length=1)
