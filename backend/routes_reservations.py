from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import reservation_service
from auth import Identity
from auth_service import get_identity, get_optional_identity
from database import get_db
from redis_client import redis_client
from schemas import ReservationCreate, StatusUpdate

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.get("")
def get_reservations(status: Optional[str] = None, reservation_date: Optional[date] = Query(None, alias="date"),
                     db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    reservations = reservation_service.list_reservations(db, identity, status, reservation_date)
    return {
        "success": True,
        "data": {"reservations": [reservation_service.reservation_to_dict(r) for r in reservations]},
    }


@router.get("/{reservation_id}")
def get_reservation(reservation_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    reservation = reservation_service.get_reservation(db, identity, reservation_id)
    return {"success": True, "data": {"reservation": reservation_service.reservation_to_dict(reservation)}}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_reservation(data: ReservationCreate, db: Session = Depends(get_db),
                       identity: Optional[Identity] = Depends(get_optional_identity)):
    reservation = reservation_service.create_reservation(db, identity, data)
    return {
        "success": True,
        "message": "Reservation created successfully",
        "data": {"reservation": reservation_service.reservation_to_dict(reservation)},
    }


@router.patch("/{reservation_id}/status")
def update_reservation_status(reservation_id: int, data: StatusUpdate, db: Session = Depends(get_db),
                              identity: Identity = Depends(get_identity)):
    reservation = reservation_service.update_reservation_status(db, identity, reservation_id, data.status)
    redis_client.invalidate_tables_cache()
    return {
        "success": True,
        "message": "Reservation status updated successfully",
        "data": {"reservation": reservation_service.reservation_to_dict(reservation)},
    }


@router.patch("/{reservation_id}/cancel")
def cancel_reservation(reservation_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    reservation = reservation_service.cancel_reservation(db, identity, reservation_id)
    redis_client.invalidate_tables_cache()
    return {
        "success": True,
        "message": "Reservation cancelled successfully",
        "data": {"reservation": reservation_service.reservation_to_dict(reservation)},
    }
