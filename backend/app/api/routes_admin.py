from datetime import timedelta
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Response
from starlette.requests import Request

from app.api import get_admin_service, require_super_admin
from app.models.domain import Booking, BookingStatus, utcnow
from app.models.schemas import (
    AnalyticsSchema,
    BookingCreate,
    BookingPageSchema,
    BookingSchema,
    BookingUpdate,
    ReconcileResponse,
    ServiceSchema,
    ServiceUpdate,
    UserCreate,
    UserSchema,
    UserUpdate,
)
from app.services.admin_service import AdminService
from app.services.pricing import calculate_total_cost

router = APIRouter()


def _booking_from_payload(payload: BookingCreate) -> Booking:
    quote = calculate_total_cost(payload.vehicle_size, payload.distance)
    data = payload.model_dump()
    return Booking(
        id="",
        service_id=None,
        service_number=None,
        idempotency_key=str(uuid4()),
        total_cost=quote.total_cost,
        tow_truck_type=quote.tow_truck_type.value,
        status=BookingStatus.pending,
        created_at=utcnow(),
        **data,
    )


@router.get("/bookings", response_model=BookingPageSchema)
async def list_bookings(
    request: Request,
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    status: Optional[BookingStatus] = Query(None),
    service: AdminService = Depends(get_admin_service),
) -> BookingPageSchema:
    limit = limit or request.app.state.settings.default_page_size
    result = await service.list_bookings(page=page, limit=limit, status=status)
    return BookingPageSchema.from_domain(result)


@router.post("/bookings", response_model=BookingSchema, status_code=201)
async def create_booking(
    payload: BookingCreate, service: AdminService = Depends(get_admin_service)
) -> BookingSchema:
    booking = await service.create_booking(_booking_from_payload(payload))
    return BookingSchema.from_domain(booking)


@router.patch("/bookings/{booking_id}", response_model=BookingSchema)
async def update_booking(
    booking_id: str, payload: BookingUpdate, service: AdminService = Depends(get_admin_service)
) -> BookingSchema:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    return BookingSchema.from_domain(await service.update_booking(booking_id, changes))


@router.delete("/bookings/{booking_id}", status_code=204)
async def delete_booking(booking_id: str, service: AdminService = Depends(get_admin_service)) -> Response:
    await service.delete_booking(booking_id)
    return Response(status_code=204)


@router.get("/users", response_model=List[UserSchema])
async def list_users(service: AdminService = Depends(get_admin_service)) -> List[UserSchema]:
    return [UserSchema.from_domain(u) for u in await service.list_users()]


@router.post("/users", response_model=UserSchema, status_code=201)
async def create_user(payload: UserCreate, service: AdminService = Depends(get_admin_service)) -> UserSchema:
    user = await service.create_user(
        email=payload.email, full_name=payload.full_name, phone=payload.phone, role=payload.role
    )
    return UserSchema.from_domain(user)


@router.patch("/users/{user_id}", response_model=UserSchema)
async def update_user(
    user_id: str, payload: UserUpdate, service: AdminService = Depends(get_admin_service)
) -> UserSchema:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    return UserSchema.from_domain(await service.update_user(user_id, changes))


@router.delete("/users/{user_id}", status_code=204, dependencies=[Depends(require_super_admin)])
async def delete_user(user_id: str, service: AdminService = Depends(get_admin_service)) -> Response:
    await service.delete_user(user_id)
    return Response(status_code=204)


@router.get("/services", response_model=List[ServiceSchema])
async def list_services(service: AdminService = Depends(get_admin_service)) -> List[ServiceSchema]:
    return [ServiceSchema.from_domain(s) for s in await service.list_services()]


@router.patch("/services/{service_id}", response_model=ServiceSchema)
async def update_service(
    service_id: str, payload: ServiceUpdate, service: AdminService = Depends(get_admin_service)
) -> ServiceSchema:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    return ServiceSchema.from_domain(await service.update_service(service_id, changes))


@router.delete("/services/{service_id}", status_code=204)
async def delete_service(service_id: str, service: AdminService = Depends(get_admin_service)) -> Response:
    await service.delete_service(service_id)
    return Response(status_code=204)


@router.post("/services/reconcile", response_model=ReconcileResponse)
async def reconcile_services(
    request: Request, service: AdminService = Depends(get_admin_service)
) -> ReconcileResponse:
    grace = timedelta(minutes=request.app.state.settings.orphan_grace_minutes)
    return ReconcileResponse(removed=await service.reconcile_orphaned_services(grace))


@router.get("/analytics", response_model=AnalyticsSchema)
async def analytics(service: AdminService = Depends(get_admin_service)) -> AnalyticsSchema:
    return AnalyticsSchema.from_domain(await service.analytics())
