# FILE: portrait_backend/services/image_validation.py
"""
Upload policy checks run before any money is spent on generation

The client reports width, height, size and type alongside the upload, but
every hard check runs against the decoded bytes: Pillow sniffs the format
and reads the real pixel size.
"""
import logging
from typing import Any, Dict, List, Optional

from portrait_backend.constants import (
    ACCEPTED_IMAGE_TYPES,
    FULL_SIZE,
    MAX_ASPECT_RATIO,
    MIN_ASPECT_RATIO,
    PREVIEW_SIZE,
    UPLOAD_MAX_SIZE,
)
from portrait_backend.models.portrait import ImagePayload, SizeClass
from portrait_backend.services.response_processor import decode_base64_image, inspect_image_bytes

logger = logging.getLogger(__name__)

FULL_SIZE_WARNING = "Image resolution may be insufficient for full-size generation"
INVALID_BASE64_ERROR = "Image data is not valid base64"
UNREADABLE_IMAGE_ERROR = "Image data could not be read as an image"


def validate_image_for_ai(image: ImagePayload) -> Dict[str, Any]:
    """
    Validate an uploaded image against the generation policy.

    Hard errors: undecodable payload, decoded byte size over
    UPLOAD_MAX_SIZE, either decoded side under PREVIEW_SIZE. Warnings:
    extreme aspect ratio, resolution below FULL_SIZE, reported dimensions
    that disagree with the pixels.
    """
    errors: List[str] = []
    warnings: List[str] = []

    raw = decode_base64_image(image.base64_data)
    if raw is None:
        return {"is_valid": False, "errors": [INVALID_BASE64_ERROR], "warnings": [], "mime_type": None}

    if len(raw) > UPLOAD_MAX_SIZE:
        errors.append(f"Image size must be less than {UPLOAD_MAX_SIZE // (1024 * 1024)}MB")

    mime_type, dimensions = inspect_image_bytes(raw)
    if dimensions is None:
        errors.append(UNREADABLE_IMAGE_ERROR)
        return {"is_valid": False, "errors": errors, "warnings": warnings, "mime_type": None}

    width = dimensions["width"]
    height = dimensions["height"]

    if width < PREVIEW_SIZE:
        errors.append(f"Image width must be at least {PREVIEW_SIZE}px (got {width}px)")
    if height < PREVIEW_SIZE:
        errors.append(f"Image height must be at least {PREVIEW_SIZE}px (got {height}px)")

    if width > 0 and height > 0:
        aspect_ratio = width / height
        if aspect_ratio < MIN_ASPECT_RATIO or aspect_ratio > MAX_ASPECT_RATIO:
            warnings.append("Extreme aspect ratio may affect generation quality")

    if width < FULL_SIZE or height < FULL_SIZE:
        warnings.append(FULL_SIZE_WARNING)

    reported = (image.dimensions.width, image.dimensions.height)
    if reported != (width, height):
        logger.info(f"Image {image.id} reported {reported[0]}x{reported[1]}, decoded {width}x{height}")

    return {
        "is_valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "mime_type": mime_type,
    }


def validate_mime_type(image: ImagePayload, sniffed_type: Optional[str] = None) -> Dict[str, Any]:
    """Both the declared type and, when known, the decoded format must be accepted"""
    errors: List[str] = []
    if image.type.lower() not in ACCEPTED_IMAGE_TYPES:
        errors.append(f"Unsupported image type: {image.type}")
    elif sniffed_type is not None and sniffed_type not in ACCEPTED_IMAGE_TYPES:
        errors.append(f"Unsupported image type: {sniffed_type}")
    return {"is_valid": not errors, "errors": errors, "warnings": []}


def get_optimal_generation_size(image: ImagePayload) -> SizeClass:
    """Classify by shorter side; used for defaults only"""
    min_dimension = min(image.dimensions.width, image.dimensions.height)
    return SizeClass.FULL if min_dimension >= FULL_SIZE else SizeClass.PREVIEW


def validate_generation_request(
    image: ImagePayload,
    size: SizeClass
) -> Dict[str, Any]:
    """
    Combined image and type checks for one generation request.

    The full-size resolution warning only matters to full requests, so it
    is dropped for previews.
    """
    image_check = validate_image_for_ai(image)
    type_check = validate_mime_type(image, image_check["mime_type"])

    errors = image_check["errors"] + type_check["errors"]
    warnings = image_check["warnings"]

    if size == SizeClass.PREVIEW:
        warnings = [w for w in warnings if w != FULL_SIZE_WARNING]

    if errors:
        logger.info(f"Generation request rejected for image {image.id}: {errors}")

    return {
        "is_valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }
