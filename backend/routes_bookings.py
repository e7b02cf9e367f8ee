from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import booking_service
from auth import Identity
from auth_service import get_identity
from database import get_db
from schemas import BookingCreate, StatusUpdate

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("")
def get_bookings(status: Optional[str] = None, db: Session = Depends(get_db),
                 identity: Identity = Depends(get_identity)):
    bookings = booking_service.list_bookings(db, identity, status)
    return {"success": True, "data": {"bookings": [booking_service.booking_to_dict(b) for b in bookings]}}


@router.get("/{booking_id}")
def get_booking(booking_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    booking = booking_service.get_booking(db, identity, booking_id)
    return {"success": True, "data": {"booking": booking_service.booking_to_dict(booking)}}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_booking(data: BookingCreate, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    booking = booking_service.create_booking(db, identity, data)
    return {
        "success": True,
        "message": "Booking created successfully",
        "data": {"booking": booking_service.booking_to_dict(booking)},
    }


@router.patch("/{booking_id}/status")
def update_booking_status(booking_id: int, data: StatusUpdate, db: Session = Depends(get_db),
                          identity: Identity = Depends(get_identity)):
    booking = booking_service.update_booking_status(db, identity, booking_id, data.status)
    return {
        "success": True,
        "message": "Booking status updated successfully",
        "data": {"booking": booking_service.booking_to_dict(booking)},
    }


@router.patch("/{booking_id}/cancel")
def cancel_booking(booking_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    booking = booking_service.cancel_booking(db, identity, booking_id)
    return {
        "success": True,
        "message": "Booking cancelled successfully",
        "data": {"booking": booking_service.booking_to_dict(booking)},
    }
