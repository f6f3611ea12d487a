from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.domain import (
    AnalyticsSummary,
    Booking,
    BookingConfirmation,
    BookingForm,
    BookingPage,
    BookingStatus,
    BookingSummary,
    PriceQuote,
    Service,
    User,
    UserRole,
)


class BookingRequest(BaseModel):
    service_type: str = "Tow"
    user_name: str = ""
    phone_number: str = ""
    vehicle_brand: str = ""
    vehicle_model: str = ""
    vehicle_color: str = ""
    license_plate: str = ""
    vehicle_size: Optional[str] = None
    pickup_address: str = ""
    drop_off_address: str = ""
    vehicle_issue: str = ""
    additional_details: str = ""
    wheels_status: str = ""
    pickup_datetime: Optional[datetime] = None
    payment_method: str = "card"
    distance: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    test_mode: bool = False
    payment_client_secret: Optional[str] = None
    idempotency_key: Optional[str] = None

    def to_form(self) -> BookingForm:
        return BookingForm(
            user_name=self.user_name,
            phone_number=self.phone_number,
            vehicle_brand=self.vehicle_brand,
            vehicle_model=self.vehicle_model,
            vehicle_color=self.vehicle_color,
            license_plate=self.license_plate,
            vehicle_size=self.vehicle_size or "",
            pickup_address=self.pickup_address,
            drop_off_address=self.drop_off_address,
            pickup_datetime=self.pickup_datetime,
            service_type=self.service_type,
            vehicle_issue=self.vehicle_issue,
            additional_details=self.additional_details,
            wheels_status=self.wheels_status,
            payment_method=self.payment_method,
            distance=self.distance,
        )


class QuoteRequest(BaseModel):
    vehicle_size: Optional[str] = None
    vehicle_model: Optional[str] = None
    distance: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    pickup_address: Optional[str] = None
    drop_off_address: Optional[str] = None


class QuoteResponse(BaseModel):
    vehicle_size: str
    tow_truck_type: str
    base_price: float
    per_km: float
    distance: float
    total_cost: float

    @classmethod
    def from_domain(cls, obj: PriceQuote) -> "QuoteResponse":
        return cls(
            vehicle_size=obj.vehicle_size,
            tow_truck_type=obj.tow_truck_type.value,
            base_price=obj.base_price,
            per_km=obj.per_km,
            distance=obj.distance,
            total_cost=obj.total_cost,
        )


class PaymentIntentRequest(BaseModel):
    amount: int = Field(..., description="Amount in cents")


class PaymentIntentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(..., serialization_alias="clientSecret")


class BookingConfirmationSchema(BaseModel):
    booking_id: str
    service_id: str
    service_number: str
    status: BookingStatus
    total_cost: float
    tow_truck_type: str
    idempotency_key: str
    is_test_mode: bool
    replayed: bool = False

    @classmethod
    def from_domain(cls, obj: BookingConfirmation) -> "BookingConfirmationSchema":
        return cls(
            booking_id=obj.booking_id,
            service_id=obj.service_id,
            service_number=obj.service_number,
            status=obj.status,
            total_cost=obj.total_cost,
            tow_truck_type=obj.tow_truck_type,
            idempotency_key=obj.idempotency_key,
            is_test_mode=obj.is_test_mode,
            replayed=obj.replayed,
        )


class BookingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    service_id: Optional[str] = None
    service_number: Optional[str] = None
    idempotency_key: str
    service_type: str
    user_name: str
    phone_number: str
    vehicle_brand: str
    vehicle_model: str
    vehicle_color: str
    license_plate: str
    vehicle_size: str
    pickup_address: str
    drop_off_address: str
    pickup_datetime: datetime
    distance: float
    total_cost: float
    tow_truck_type: str
    status: BookingStatus
    payment_method: str
    vehicle_issue: str = ""
    additional_details: str = ""
    wheels_status: str = ""
    payment_intent_id: Optional[str] = None
    is_test_mode: bool = False
    created_at: datetime

    @classmethod
    def from_domain(cls, obj: Booking) -> "BookingSchema":
        return cls.model_validate(obj)


class BookingCreate(BaseModel):
    """Admin-side manual booking; pricing is recomputed from size and distance."""

    user_id: Optional[str] = None
    service_type: str = "Tow"
    user_name: str
    phone_number: str
    vehicle_brand: str
    vehicle_model: str
    vehicle_color: str
    license_plate: str
    vehicle_size: str
    pickup_address: str
    drop_off_address: str
    pickup_datetime: datetime
    distance: float = Field(..., ge=0, allow_inf_nan=False)
    payment_method: str = "card"
    vehicle_issue: str = ""
    additional_details: str = ""
    wheels_status: str = ""


class BookingUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    pickup_datetime: Optional[datetime] = None
    pickup_address: Optional[str] = None
    drop_off_address: Optional[str] = None
    phone_number: Optional[str] = None
    additional_details: Optional[str] = None


class UserSummarySchema(BaseModel):
    id: str
    email: str


class ServiceSummarySchema(BaseModel):
    id: str
    service_number: str
    status: BookingStatus


class BookingSummarySchema(BaseModel):
    id: str
    status: BookingStatus
    payment_method: str
    total_cost: float
    tow_truck_type: str
    pickup_datetime: datetime
    created_at: datetime
    is_test_mode: bool
    user: Optional[UserSummarySchema] = None
    service: Optional[ServiceSummarySchema] = None

    @classmethod
    def from_domain(cls, obj: BookingSummary) -> "BookingSummarySchema":
        booking = obj.booking
        return cls(
            id=booking.id,
            status=booking.status,
            payment_method=booking.payment_method,
            total_cost=booking.total_cost,
            tow_truck_type=booking.tow_truck_type,
            pickup_datetime=booking.pickup_datetime,
            created_at=booking.created_at,
            is_test_mode=booking.is_test_mode,
            user=UserSummarySchema(id=obj.user.id, email=obj.user.email) if obj.user else None,
            service=ServiceSummarySchema(
                id=obj.service.id,
                service_number=obj.service.service_number,
                status=obj.service.status,
            )
            if obj.service
            else None,
        )


class BookingPageSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: List[BookingSummarySchema]
    count: int
    total_pages: int = Field(..., serialization_alias="totalPages")

    @classmethod
    def from_domain(cls, obj: BookingPage) -> "BookingPageSchema":
        return cls(
            data=[BookingSummarySchema.from_domain(row) for row in obj.data],
            count=obj.count,
            total_pages=obj.total_pages,
        )


class UserSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    phone: str
    role: UserRole
    created_at: datetime

    @classmethod
    def from_domain(cls, obj: User) -> "UserSchema":
        return cls.model_validate(obj)


class UserCreate(BaseModel):
    email: str
    full_name: str = ""
    phone: str = ""
    role: UserRole = UserRole.user


class UserUpdate(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None


class ServiceSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    service_number: str
    user_id: Optional[str] = None
    idempotency_key: str
    status: BookingStatus
    created_at: datetime

    @classmethod
    def from_domain(cls, obj: Service) -> "ServiceSchema":
        return cls.model_validate(obj)


class ServiceUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    user_id: Optional[str] = None


class ReconcileResponse(BaseModel):
    removed: List[str]


class AnalyticsSchema(BaseModel):
    total_bookings: int
    bookings_by_status: Dict[str, int]
    paid_revenue: float
    test_mode_bookings: int
    total_users: int

    @classmethod
    def from_domain(cls, obj: AnalyticsSummary) -> "AnalyticsSchema":
        return cls(
            total_bookings=obj.total_bookings,
            bookings_by_status=obj.bookings_by_status,
            paid_revenue=obj.paid_revenue,
            test_mode_bookings=obj.test_mode_bookings,
            total_users=obj.total_users,
        )
