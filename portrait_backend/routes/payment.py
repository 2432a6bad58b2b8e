# FILE: portrait_backend/routes/payment.py
"""
Payment information endpoint
"""
from fastapi import APIRouter

from portrait_backend.services.payments import get_price_info

router = APIRouter()


@router.get("/price")
async def price():
    """Download price shown on the payment step"""
    return get_price_info()
