from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from models import (
    FOOD_CATEGORIES,
    ROOM_STATUSES,
    ROOM_TYPES,
    STAFF_STATUSES,
    TABLE_STATUSES,
)


def _check_choice(value: Optional[str], choices, label: str) -> Optional[str]:
    if value is None:
        return value
    if value not in choices:
        raise ValueError(f"{label} must be one of: {', '.join(choices)}")
    return value


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


def _check_password(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if len(value) < 6:
        raise ValueError("Password must be at least 6 characters long")
    return value


# ========== Пользователи ==========

class UserCreate(BaseModel):
    email: str
    password: str
    name: str
    phone: Optional[str] = None

    @validator("email")
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @validator("password")
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @validator("name")
    def validate_name(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Name cannot be empty")
        if len(v) > 100:
            raise ValueError("Name cannot exceed 100 characters")
        return v.strip()


class UserLogin(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")

    @validator("new_password")
    def validate_new_password(cls, v: str) -> str:
        return _check_password(v)


# ========== Номера ==========

def _check_price(value: Optional[float]) -> Optional[float]:
    if value is None:
        return value
    if value <= 0:
        raise ValueError("Price must be greater than 0")
    return round(value, 2)


def _check_capacity(value: Optional[int]) -> Optional[int]:
    if value is not None and value < 1:
        raise ValueError("Capacity must be at least 1")
    return value


def _room_number_as_str(value):
    if value is None:
        return value
    value = str(value).strip()
    if not value:
        raise ValueError("Room number cannot be empty")
    return value


class RoomCreate(BaseModel):
    name: str
    type: str
    price: float
    capacity: int
    status: str = "available"
    description: Optional[str] = None
    floor: int
    room_number: str = Field(..., alias="roomNumber")
    amenities: List[str] = []
    images: List[str] = []

    @validator("type")
    def validate_type(cls, v: str) -> str:
        return _check_choice(v, ROOM_TYPES, "Room type")

    @validator("status")
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, ROOM_STATUSES, "Room status")

    @validator("price")
    def validate_price(cls, v: float) -> float:
        return _check_price(v)

    @validator("capacity")
    def validate_capacity(cls, v: int) -> int:
        return _check_capacity(v)

    @validator("room_number", pre=True)
    def validate_room_number(cls, v):
        return _room_number_as_str(v)


class RoomUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    price: Optional[float] = None
    capacity: Optional[int] = None
    status: Optional[str] = None
    description: Optional[str] = None
    floor: Optional[int] = None
    room_number: Optional[str] = Field(None, alias="roomNumber")
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None

    @validator("type")
    def validate_type(cls, v):
        return _check_choice(v, ROOM_TYPES, "Room type")

    @validator("status")
    def validate_status(cls, v):
        return _check_choice(v, ROOM_STATUSES, "Room status")

    @validator("price")
    def validate_price(cls, v):
        return _check_price(v)

    @validator("capacity")
    def validate_capacity(cls, v):
        return _check_capacity(v)

    @validator("room_number", pre=True)
    def validate_room_number(cls, v):
        return _room_number_as_str(v)


# ========== Столы ==========

class TableCreate(BaseModel):
    table_number: int = Field(..., alias="tableNumber")
    capacity: int
    status: str = "available"
    location: Optional[str] = None
    description: Optional[str] = None

    @validator("capacity")
    def validate_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Capacity must be at least 1")
        return v

    @validator("status")
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, TABLE_STATUSES, "Table status")


class TableUpdate(BaseModel):
    table_number: Optional[int] = Field(None, alias="tableNumber")
    capacity: Optional[int] = None
    status: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None

    @validator("capacity")
    def validate_capacity(cls, v):
        if v is not None and v < 1:
            raise ValueError("Capacity must be at least 1")
        return v

    @validator("status")
    def validate_status(cls, v):
        return _check_choice(v, TABLE_STATUSES, "Table status")


# ========== Меню ==========

class FoodItemCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: float
    category: str
    image: Optional[str] = None
    available: bool = True
    preparation_time: int = Field(0, alias="preparationTime")

    @validator("name")
    def validate_name(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Food item name cannot be empty")
        if len(v) > 100:
            raise ValueError("Food item name cannot exceed 100 characters")
        return v.strip()

    @validator("price")
    def validate_price(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Price must be greater than 0")
        return round(v, 2)

    @validator("category")
    def validate_category(cls, v: str) -> str:
        return _check_choice(v, FOOD_CATEGORIES, "Category")


class FoodItemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    image: Optional[str] = None
    available: Optional[bool] = None
    preparation_time: Optional[int] = Field(None, alias="preparationTime")

    @validator("price")
    def validate_price(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Price must be greater than 0")
        return v

    @validator("category")
    def validate_category(cls, v):
        return _check_choice(v, FOOD_CATEGORIES, "Category")


# ========== Персонал ==========

class StaffCreate(BaseModel):
    name: str
    email: str
    password: Optional[str] = None
    role: str
    department: str
    phone: Optional[str] = None
    avatar: Optional[str] = None
    status: str = "active"
    hire_date: date = Field(..., alias="hireDate")

    @validator("email")
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @validator("password")
    def validate_password(cls, v):
        return _check_password(v)

    @validator("status")
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, STAFF_STATUSES, "Staff status")


class StaffUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    status: Optional[str] = None
    hire_date: Optional[date] = Field(None, alias="hireDate")

    @validator("email")
    def validate_email(cls, v):
        return _check_email(v)

    @validator("password")
    def validate_password(cls, v):
        return _check_password(v)

    @validator("status")
    def validate_status(cls, v):
        return _check_choice(v, STAFF_STATUSES, "Staff status")


# ========== Бронирование номеров ==========

class BookingCreate(BaseModel):
    room_id: int = Field(..., alias="roomId")
    check_in: date = Field(..., alias="checkIn")
    check_out: date = Field(..., alias="checkOut")
    guests: int
    special_requests: Optional[str] = Field(None, alias="specialRequests")

    @validator("check_in", "check_out", pre=True)
    def strip_time_part(cls, v):
        # Клиент может прислать ISO datetime ("2024-06-01T00:00:00.000Z"), нам нужна только дата
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @validator("guests")
    def validate_guests(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Guests must be at least 1")
        return v


class StatusUpdate(BaseModel):
    status: str

    @validator("status")
    def validate_status(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Status is required")
        return v.strip()


# ========== Бронирование столов ==========

class ReservationCreate(BaseModel):
    table_id: int = Field(..., alias="tableId")
    reservation_date: date = Field(..., alias="reservationDate")
    reservation_time: time = Field(..., alias="reservationTime")
    duration: int = 120
    guests: int
    special_requests: Optional[str] = Field(None, alias="specialRequests")
    user_id: Optional[int] = Field(None, alias="userId")

    @validator("reservation_time", pre=True)
    def parse_time(cls, v):
        if isinstance(v, str):
            for fmt in ("%H:%M:%S", "%H:%M"):
                try:
                    return datetime.strptime(v.strip(), fmt).time()
                except ValueError:
                    continue
            raise ValueError("Reservation time must be in HH:MM format")
        return v

    @validator("duration", pre=True)
    def default_duration(cls, v):
        return 120 if v is None else v

    @validator("duration")
    def validate_duration(cls, v: int) -> int:
        if v <= 0 or v > 24 * 60:
            raise ValueError("Duration must be between 1 and 1440 minutes")
        return v

    @validator("guests")
    def validate_guests(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Guests must be at least 1")
        return v


# ========== Заказы еды ==========

class OrderItemCreate(BaseModel):
    food_item_id: int = Field(..., alias="foodItemId")
    quantity: int

    @validator("quantity")
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than 0")
        if v > 100:
            raise ValueError("Quantity cannot exceed 100")
        return v


class OrderCreate(BaseModel):
    items: List[OrderItemCreate]
    room_number: Optional[str] = Field(None, alias="roomNumber")
    user_id: Optional[int] = Field(None, alias="userId")

    @validator("items")
    def validate_items(cls, v: List[OrderItemCreate]) -> List[OrderItemCreate]:
        if not v:
            raise ValueError("Items are required")
        return v

    @validator("room_number", pre=True)
    def room_number_as_str(cls, v):
        return None if v is None else str(v)


# ========== Платежи ==========

class PaymentIntentCreate(BaseModel):
    amount: Optional[float] = None
    currency: str = "usd"
    booking_id: Optional[int] = Field(None, alias="bookingId")
    reservation_id: Optional[int] = Field(None, alias="reservationId")
    order_id: Optional[int] = Field(None, alias="orderId")
    metadata: Dict[str, Any] = {}

    @validator("currency")
    def validate_currency(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if len(v) != 3:
            raise ValueError("Currency must be a 3-letter ISO code")
        return v


class PaymentConfirm(BaseModel):
    payment_intent_id: Optional[str] = Field(None, alias="paymentIntentId")
    payment_id: Optional[int] = Field(None, alias="paymentId")
