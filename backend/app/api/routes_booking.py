from fastapi import APIRouter, Depends

from app.api import get_booking_service, get_session_loader
from app.models.schemas import (
    BookingConfirmationSchema,
    BookingRequest,
    BookingSchema,
    QuoteRequest,
    QuoteResponse,
)
from app.services.booking_service import BookingService

router = APIRouter()


@router.post("/quote", response_model=QuoteResponse)
async def quote_booking(
    payload: QuoteRequest,
    service: BookingService = Depends(get_booking_service),
) -> QuoteResponse:
    quote = await service.quote(
        vehicle_size=payload.vehicle_size,
        vehicle_model=payload.vehicle_model,
        distance=payload.distance,
        pickup_address=payload.pickup_address,
        drop_off_address=payload.drop_off_address,
    )
    return QuoteResponse.from_domain(quote)


@router.post("", response_model=BookingConfirmationSchema, status_code=201)
async def submit_booking(
    payload: BookingRequest,
    load_session=Depends(get_session_loader),
    service: BookingService = Depends(get_booking_service),
) -> BookingConfirmationSchema:
    confirmation = await service.submit(
        form=payload.to_form(),
        session_loader=load_session,
        payment_client_secret=payload.payment_client_secret,
        test_mode=payload.test_mode,
        idempotency_key=payload.idempotency_key,
    )
    return BookingConfirmationSchema.from_domain(confirmation)


@router.get("/{booking_id}", response_model=BookingSchema)
async def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingSchema:
    return BookingSchema.from_domain(await service.get_booking(booking_id))
