# models.py
from sqlalchemy import (
    Boolean, Column, ForeignKey, Integer, String, Float, Date, Time, DateTime, Text,
    CheckConstraint, Index, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base

USER_ROLES = ("admin", "staff", "user")

ROOM_TYPES = ("standard", "deluxe", "suite", "penthouse")
ROOM_STATUSES = ("available", "booked", "occupied", "maintenance")
BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "checked_in", "checked_out")

TABLE_STATUSES = ("available", "reserved", "occupied", "maintenance")
RESERVATION_STATUSES = ("pending", "confirmed", "seated", "completed", "cancelled")

FOOD_CATEGORIES = ("appetizer", "main", "dessert", "beverage")
ORDER_STATUSES = ("pending", "preparing", "ready", "delivered", "cancelled")

PAYMENT_STATUSES = ("pending", "completed", "failed")
STAFF_STATUSES = ("active", "inactive", "on_leave")

# Брони в этих статусах не занимают номер/стол
INACTIVE_BOOKING_STATUSES = ("cancelled", "checked_out")
INACTIVE_RESERVATION_STATUSES = ("cancelled", "completed")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    avatar = Column(String(500), nullable=True)
    phone = Column(String(30), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bookings = relationship("RoomBooking", back_populates="user")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    price = Column(Float, nullable=False)
    capacity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="available")
    description = Column(Text, nullable=True)
    floor = Column(Integer, nullable=False)
    room_number = Column(String(20), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    amenities = relationship("RoomAmenity", back_populates="room", cascade="all, delete-orphan")
    images = relationship(
        "RoomImage", back_populates="room", cascade="all, delete-orphan", order_by="RoomImage.display_order"
    )
    bookings = relationship("RoomBooking", back_populates="room", cascade="all, delete-orphan")


class RoomAmenity(Base):
    __tablename__ = "room_amenities"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    amenity = Column(String(100), nullable=False)

    room = relationship("Room", back_populates="amenities")


class RoomImage(Base):
    __tablename__ = "room_images"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    image_url = Column(String(500), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)

    room = relationship("Room", back_populates="images")


class RoomBooking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    total_amount = Column(Float, nullable=False, default=0)
    guests = Column(Integer, nullable=False, default=1)
    special_requests = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    room = relationship("Room", back_populates="bookings")
    user = relationship("User", back_populates="bookings")


class Table(Base):
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    table_number = Column(Integer, unique=True, index=True, nullable=False)
    capacity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="available")
    location = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    reservations = relationship("TableReservation", back_populates="table")


_ACTIVE_RESERVATION = text("status NOT IN ('cancelled', 'completed')")


class TableReservation(Base):
    __tablename__ = "table_reservations"
    __table_args__ = (
        # Один активный резерв на стол в конкретный слот (дата + время)
        Index(
            "uq_table_reservations_active_slot",
            "table_id", "reservation_date", "reservation_time",
            unique=True,
            postgresql_where=_ACTIVE_RESERVATION,
            sqlite_where=_ACTIVE_RESERVATION,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reservation_date = Column(Date, nullable=False)
    reservation_time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False, default=120)
    status = Column(String(20), nullable=False, default="pending")
    total_amount = Column(Float, nullable=False, default=0)
    guests = Column(Integer, nullable=False)
    special_requests = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    table = relationship("Table", back_populates="reservations")
    user = relationship("User")


class FoodItem(Base):
    __tablename__ = "food_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    price = Column(Float, nullable=False)
    category = Column(String(20), nullable=False)
    image = Column(String(500), nullable=True)
    available = Column(Boolean, default=True, nullable=False)
    preparation_time = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class FoodOrder(Base):
    __tablename__ = "food_orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="pending")
    total_amount = Column(Float, nullable=False, default=0)
    room_number = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
    items = relationship("FoodOrderItem", back_populates="order", cascade="all, delete-orphan")


class FoodOrderItem(Base):
    __tablename__ = "food_order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("food_orders.id", ondelete="CASCADE"), nullable=False)
    food_item_id = Column(Integer, ForeignKey("food_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False)

    order = relationship("FoodOrder", back_populates="items")
    food_item = relationship("FoodItem")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN booking_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN reservation_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN order_id IS NULL THEN 0 ELSE 1 END) <= 1",
            name="ck_payments_single_target",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    reservation_id = Column(Integer, ForeignKey("table_reservations.id", ondelete="SET NULL"), nullable=True)
    order_id = Column(Integer, ForeignKey("food_orders.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(20), nullable=False, default="pending")
    payment_intent_id = Column(String(255), unique=True, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class StaffMember(Base):
    __tablename__ = "staff_members"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(100), nullable=False)
    department = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    avatar = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    hire_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
