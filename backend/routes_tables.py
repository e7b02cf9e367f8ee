from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from auth import Identity
from auth_service import require_roles
from database import get_db
from redis_client import redis_client
from schemas import TableCreate, TableUpdate

router = APIRouter(prefix="/tables", tags=["tables"])

ACTIVE_RESERVATION_STATUSES = ("pending", "confirmed", "seated")


def table_to_dict(table: models.Table) -> dict:
    return {
        "id": table.id,
        "tableNumber": table.table_number,
        "capacity": table.capacity,
        "status": table.status,
        "location": table.location,
        "description": table.description,
        "createdAt": table.created_at,
    }


def _get_table(db: Session, table_id: int) -> models.Table:
    table = db.query(models.Table).filter(models.Table.id == table_id).first()
    if not table:
        raise HTTPException(status_code=404, detail="Table not found")
    return table


def _commit_table(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Table number already exists")


@router.get("")
def get_tables(status: Optional[str] = None,
               min_capacity: Optional[int] = Query(None, alias="minCapacity"),
               max_capacity: Optional[int] = Query(None, alias="maxCapacity"),
               db: Session = Depends(get_db)):
    unfiltered = status is None and min_capacity is None and max_capacity is None
    if unfiltered:
        cached = redis_client.get_cached_tables()
        if cached is not None:
            return {"success": True, "data": {"tables": cached}}

    query = db.query(models.Table)
    if status:
        query = query.filter(models.Table.status == status)
    if min_capacity is not None:
        query = query.filter(models.Table.capacity >= min_capacity)
    if max_capacity is not None:
        query = query.filter(models.Table.capacity <= max_capacity)

    tables = [table_to_dict(t) for t in query.order_by(models.Table.table_number).all()]
    if unfiltered:
        redis_client.cache_tables(tables)
    return {"success": True, "data": {"tables": tables}}


@router.get("/{table_id}")
def get_table(table_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": {"table": table_to_dict(_get_table(db, table_id))}}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_table(data: TableCreate, db: Session = Depends(get_db),
                 identity: Identity = Depends(require_roles("admin", "staff"))):
    if db.query(models.Table).filter(models.Table.table_number == data.table_number).first():
        raise HTTPException(status_code=400, detail="Table number already exists")

    table = models.Table(**data.dict())
    db.add(table)
    _commit_table(db)
    db.refresh(table)
    redis_client.invalidate_tables_cache()
    return {"success": True, "message": "Table created successfully", "data": {"table": table_to_dict(table)}}


@router.put("/{table_id}")
def update_table(table_id: int, data: TableUpdate, db: Session = Depends(get_db),
                 identity: Identity = Depends(require_roles("admin", "staff"))):
    table = _get_table(db, table_id)
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    new_number = updates.get("table_number")
    if new_number is not None and new_number != table.table_number:
        taken = db.query(models.Table).filter(
            models.Table.table_number == new_number, models.Table.id != table.id
        ).first()
        if taken:
            raise HTTPException(status_code=400, detail="Table number already exists")

    for key, value in updates.items():
        setattr(table, key, value)
    _commit_table(db)
    db.refresh(table)
    redis_client.invalidate_tables_cache()
    return {"success": True, "message": "Table updated successfully", "data": {"table": table_to_dict(table)}}


@router.delete("/{table_id}")
def delete_table(table_id: int, db: Session = Depends(get_db),
                 identity: Identity = Depends(require_roles("admin", "staff"))):
    table = _get_table(db, table_id)
    active = db.query(models.TableReservation).filter(
        models.TableReservation.table_id == table.id,
        models.TableReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
    ).count()
    if active:
        raise HTTPException(status_code=400, detail="Cannot delete table with active reservations")

    # Закрытые брони стола уходят вместе с ним
    db.query(models.TableReservation).filter(models.TableReservation.table_id == table.id).delete()
    db.delete(table)
    db.commit()
    redis_client.invalidate_tables_cache()
    return {"success": True, "message": "Table deleted successfully"}
