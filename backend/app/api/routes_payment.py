from fastapi import APIRouter, Depends

from app.api import get_booking_service
from app.models.schemas import PaymentIntentRequest, PaymentIntentResponse
from app.services.booking_service import BookingService

router = APIRouter()


@router.post("/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payload: PaymentIntentRequest,
    service: BookingService = Depends(get_booking_service),
) -> PaymentIntentResponse:
    intent = await service.create_payment_intent(payload.amount)
    return PaymentIntentResponse(client_secret=intent.client_secret)
