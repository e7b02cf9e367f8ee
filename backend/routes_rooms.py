import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import availability
import models
import pricing
from auth import Identity
from auth_service import require_roles
from database import get_db
from redis_client import redis_client
from schemas import RoomCreate, RoomUpdate

logger = logging.getLogger("RoomsRouter")

router = APIRouter(prefix="/rooms", tags=["rooms"])


def room_to_dict(room: models.Room) -> dict:
    return {
        "id": room.id,
        "name": room.name,
        "type": room.type,
        "price": room.price,
        "capacity": room.capacity,
        "status": room.status,
        "description": room.description,
        "floor": room.floor,
        "roomNumber": room.room_number,
        "amenities": [a.amenity for a in room.amenities],
        "images": [i.image_url for i in room.images],
        "createdAt": room.created_at,
    }


def _get_room(db: Session, room_id: int) -> models.Room:
    room = db.query(models.Room).filter(models.Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


def _set_children(room: models.Room, amenities=None, images=None):
    if amenities is not None:
        room.amenities = [models.RoomAmenity(amenity=a) for a in amenities]
    if images is not None:
        room.images = [models.RoomImage(image_url=url, display_order=i) for i, url in enumerate(images)]


def _commit_room(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Room number already exists")


@router.get("")
def get_rooms(type: Optional[str] = None, status: Optional[str] = None,
              min_price: Optional[float] = Query(None, alias="minPrice"),
              max_price: Optional[float] = Query(None, alias="maxPrice"),
              db: Session = Depends(get_db)):
    unfiltered = type is None and status is None and min_price is None and max_price is None
    if unfiltered:
        cached = redis_client.get_cached_rooms()
        if cached is not None:
            return {"success": True, "data": {"rooms": cached}}

    query = db.query(models.Room)
    if type:
        query = query.filter(models.Room.type == type)
    if status:
        query = query.filter(models.Room.status == status)
    if min_price is not None:
        query = query.filter(models.Room.price >= min_price)
    if max_price is not None:
        query = query.filter(models.Room.price <= max_price)

    rooms = [room_to_dict(r) for r in query.order_by(models.Room.room_number).all()]
    if unfiltered:
        redis_client.cache_rooms(rooms)
    return {"success": True, "data": {"rooms": rooms}}


@router.get("/{room_id}")
def get_room(room_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": {"room": room_to_dict(_get_room(db, room_id))}}


@router.get("/{room_id}/availability")
def get_room_availability(room_id: int, check_in: date = Query(..., alias="checkIn"),
                          check_out: date = Query(..., alias="checkOut"), db: Session = Depends(get_db)):
    room = _get_room(db, room_id)
    nights = pricing.nights_between(check_in, check_out)
    return {
        "success": True,
        "data": {
            "roomId": room.id,
            "checkIn": check_in,
            "checkOut": check_out,
            "available": availability.is_room_available(db, room, check_in, check_out),
            "nights": nights,
            "totalAmount": pricing.round_money(nights * room.price),
        },
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_room(data: RoomCreate, db: Session = Depends(get_db),
                identity: Identity = Depends(require_roles("admin"))):
    if db.query(models.Room).filter(models.Room.room_number == data.room_number).first():
        raise HTTPException(status_code=400, detail="Room number already exists")

    room = models.Room(
        name=data.name,
        type=data.type,
        price=data.price,
        capacity=data.capacity,
        status=data.status,
        description=data.description,
        floor=data.floor,
        room_number=data.room_number,
    )
    _set_children(room, data.amenities, data.images)
    db.add(room)
    _commit_room(db)
    db.refresh(room)
    redis_client.invalidate_rooms_cache()

    logger.info(f"Room {room.room_number} created by user #{identity.user_id}")
    return {"success": True, "message": "Room created successfully", "data": {"room": room_to_dict(room)}}


@router.put("/{room_id}")
def update_room(room_id: int, data: RoomUpdate, db: Session = Depends(get_db),
                identity: Identity = Depends(require_roles("admin"))):
    room = _get_room(db, room_id)
    updates = data.dict(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    new_number = updates.get("room_number")
    if new_number and new_number != room.room_number:
        taken = db.query(models.Room).filter(models.Room.room_number == new_number, models.Room.id != room.id).first()
        if taken:
            raise HTTPException(status_code=400, detail="Room number already exists")

    _set_children(room, updates.pop("amenities", None), updates.pop("images", None))
    for key, value in updates.items():
        if value is not None:
            setattr(room, key, value)
    _commit_room(db)
    db.refresh(room)
    redis_client.invalidate_rooms_cache()
    return {"success": True, "message": "Room updated successfully", "data": {"room": room_to_dict(room)}}


@router.delete("/{room_id}")
def delete_room(room_id: int, db: Session = Depends(get_db),
                identity: Identity = Depends(require_roles("admin"))):
    room = _get_room(db, room_id)
    db.delete(room)
    db.commit()
    redis_client.invalidate_rooms_cache()
    logger.info(f"Room #{room_id} deleted by user #{identity.user_id}")
    return {"success": True, "message": "Room deleted successfully"}
