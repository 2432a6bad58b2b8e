# FILE: portrait_backend/models/__init__.py
"""
Pydantic models for request/response validation
"""
from portrait_backend.models.portrait import *
