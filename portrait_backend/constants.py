# FILE: portrait_backend/constants.py
"""
Fixed policy constants for uploads, generation and rate limiting
"""

APP_NAME = "AI Business Portrait Generator"
APP_VERSION = "1.0.0"

# Upload policy
UPLOAD_MAX_SIZE = 10 * 1024 * 1024  # 10MB
ACCEPTED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp"]

# Generation sizes (pixels, shorter side)
PREVIEW_SIZE = 512
FULL_SIZE = 2048

# Output validation
PREVIEW_MAX_OUTPUT_SIZE = 5 * 1024 * 1024
FULL_MAX_OUTPUT_SIZE = 10 * 1024 * 1024

# Aspect ratio bounds shared by input and output checks
MIN_ASPECT_RATIO = 0.5
MAX_ASPECT_RATIO = 2.0
SQUARE_TOLERANCE = 0.1

# Rate limiting profiles: (max attempts, window seconds)
RATE_LIMIT_PROFILES = {
    "production": (3, 24 * 60 * 60),
    "development": (50, 60 * 60),
}

# Payment bounds (cents)
MIN_PAYMENT_AMOUNT = 50
MAX_PAYMENT_AMOUNT = 10000

ERROR_MESSAGES = {
    "INVALID_IMAGE": "Invalid image format or size. Please use JPG, PNG, or WebP under 10MB.",
    "GENERATION_FAILED": "Failed to generate portrait. Please try again.",
    "PROCESSING_FAILED": "The generated portrait did not pass quality checks. Please try again.",
    "WATERMARK_FAILED": "Failed to prepare your preview. Please try again.",
    "PAYMENT_REQUIRED": "Payment has not been completed for this download.",
    "PAYMENT_CHECK_FAILED": "We could not confirm your payment. Please try again shortly.",
    "PAYMENT_ALREADY_USED": "This payment has already been used for a download.",
    "PAYMENT_IMAGE_MISMATCH": "This payment was made for a different photo.",
    "RATE_LIMIT_EXCEEDED": "Rate limit exceeded. Please try again later.",
    "INTERNAL_ERROR": "Internal server error",
}
