from pydantic import BaseModel, EmailStr, Field
from datetime import date as Date, datetime
from typing import Any, Dict, List, Literal, Optional

from .config import settings

SlotMode = Literal["fixed", "generated"]
AssignmentMode = Literal["automatic", "manual"]


class RestaurantBase(BaseModel):
    name: str
    address: Optional[str] = None
    owner_email: Optional[EmailStr] = None
    phone: Optional[str] = None
    booking_cost: Optional[int] = Field(default=None, ge=0)
    currency: str = settings.default_currency
    reservation_start_time: str = "12:00"
    reservation_end_time: str = "22:00"
    reservation_duration_minutes: int = 120
    slot_mode: SlotMode = "fixed"
    table_assignment_mode: AssignmentMode = "manual"


class RestaurantCreate(RestaurantBase):
    # Raw location in any of the accepted shapes, normalised by the gateway
    location: Optional[Any] = None


class RestaurantUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    location: Optional[Any] = None
    owner_email: Optional[EmailStr] = None
    phone: Optional[str] = None
    currency: Optional[str] = None
    reservation_start_time: Optional[str] = None
    reservation_end_time: Optional[str] = None
    reservation_duration_minutes: Optional[int] = None
    slot_mode: Optional[SlotMode] = None
    table_assignment_mode: Optional[AssignmentMode] = None


class Restaurant(RestaurantBase):
    id: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        from_attributes = True


class TableTypeCreate(BaseModel):
    name: str
    capacity: int = Field(ge=1)
    description: Optional[str] = None


class TableType(TableTypeCreate):
    id: int
    restaurant_id: int

    class Config:
        from_attributes = True


class TableCreate(BaseModel):
    table_type_id: int
    # A number greater than 1 creates that many tables numbered 1..n
    table_number: str
    position_description: Optional[str] = None


class Table(BaseModel):
    id: int
    restaurant_id: int
    table_number: str
    position_description: Optional[str] = None
    status: str
    table_type: TableType

    class Config:
        from_attributes = True


class TableRemoval(BaseModel):
    table_id: int
    outcome: Literal["deleted", "archived"]


class PricingTierCreate(BaseModel):
    min_people: int
    max_people: int
    cost: int


class PricingTier(PricingTierCreate):
    id: int
    restaurant_id: int

    class Config:
        from_attributes = True


class BookingCostUpdate(BaseModel):
    booking_cost: Optional[int] = None


class CostResponse(BaseModel):
    party_size: int
    cost: int
    currency: str


class ClosureCreate(BaseModel):
    date: Optional[Date] = None
    is_recurring: bool = False
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    is_all_day: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None


class Closure(ClosureCreate):
    id: int
    restaurant_id: int

    class Config:
        from_attributes = True


class ReservationLimitCreate(BaseModel):
    date: Date
    start_time: str
    end_time: str
    max_reservations: int = 10


class ReservationLimitUpdate(BaseModel):
    max_reservations: int


class ReservationLimit(ReservationLimitCreate):
    id: int
    restaurant_id: int

    class Config:
        from_attributes = True


class ReservationBase(BaseModel):
    restaurant_id: int
    table_id: Optional[int] = None
    user_id: Optional[str] = None
    # Presence is checked by the booking guard so it can answer with its own error
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    date: Date
    time: str
    party_size: int
    occasion: Optional[str] = None
    special_request: Optional[str] = None


class ReservationCreate(ReservationBase):
    payment_reference: Optional[str] = None


class Reservation(ReservationBase):
    id: int
    cost: int = 0
    payment_reference: Optional[str] = None
    cancelled: bool
    attended: bool
    seen: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReservationResponse(BaseModel):
    success: bool
    message: str
    reservation: Optional[Reservation] = None
    cost: int = 0


class TableAssignment(BaseModel):
    table_id: Optional[int] = None


class AttendanceUpdate(BaseModel):
    attended: bool = True


class AvailableTable(BaseModel):
    table_id: int
    table_number: str
    capacity: int
    table_type: str
    position_description: Optional[str] = None


class AvailabilityResponse(BaseModel):
    fallback_mode: bool
    exact_match: bool
    tables: List[AvailableTable]


class AvailableTimesResponse(BaseModel):
    date: Date
    party_size: int
    fallback_mode: bool
    available_times: List[str]


class ClosedDatesResponse(BaseModel):
    closed_dates: List[Date]


class Customer(BaseModel):
    id: int
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    visits: int
    total_spend: int
    last_visit: Optional[Date] = None

    class Config:
        from_attributes = True


class AnalyticsSummary(BaseModel):
    total_reservations: int
    cancelled: int
    attended: int
    no_shows: int
    revenue: int
    unique_customers: int
    peak_hour: Optional[str] = None
    monthly: Dict[str, int]
    party_sizes: Dict[int, int]


class NoticeResult(BaseModel):
    reservation_id: int
    sent: bool


class CampaignCreate(BaseModel):
    subject: str
    body: str


class Campaign(CampaignCreate):
    id: int
    restaurant_id: int
    recipients: int
    sent: int
    failed: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
