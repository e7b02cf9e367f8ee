from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

import models
import order_service
from auth import Identity
from auth_service import get_identity, get_optional_identity, require_roles
from database import get_db
from redis_client import redis_client
from schemas import FoodItemCreate, FoodItemUpdate, OrderCreate, StatusUpdate

router = APIRouter(prefix="/food", tags=["food"])


def food_item_to_dict(item: models.FoodItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "price": item.price,
        "category": item.category,
        "image": item.image,
        "available": item.available,
        "preparationTime": item.preparation_time,
        "createdAt": item.created_at,
    }


def _get_food_item(db: Session, item_id: int) -> models.FoodItem:
    item = db.query(models.FoodItem).filter(models.FoodItem.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Food item not found")
    return item


# ========== Меню ==========

@router.get("/items")
def get_food_items(category: Optional[str] = None, available: Optional[bool] = None,
                   db: Session = Depends(get_db)):
    unfiltered = category is None and available is None
    if unfiltered:
        cached = redis_client.get_cached_food_items()
        if cached is not None:
            return {"success": True, "data": {"items": cached}}

    query = db.query(models.FoodItem)
    if category:
        query = query.filter(models.FoodItem.category == category)
    if available is not None:
        query = query.filter(models.FoodItem.available == available)

    items = [food_item_to_dict(i) for i in query.order_by(models.FoodItem.category, models.FoodItem.name).all()]
    if unfiltered:
        redis_client.cache_food_items(items)
    return {"success": True, "data": {"items": items}}


@router.get("/items/{item_id}")
def get_food_item(item_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": {"item": food_item_to_dict(_get_food_item(db, item_id))}}


@router.post("/items", status_code=status.HTTP_201_CREATED)
def create_food_item(data: FoodItemCreate, db: Session = Depends(get_db),
                     identity: Identity = Depends(require_roles("admin", "staff"))):
    item = models.FoodItem(**data.dict())
    db.add(item)
    db.commit()
    db.refresh(item)
    redis_client.invalidate_food_items_cache()
    return {"success": True, "message": "Food item created successfully", "data": {"item": food_item_to_dict(item)}}


@router.put("/items/{item_id}")
def update_food_item(item_id: int, data: FoodItemUpdate, db: Session = Depends(get_db),
                     identity: Identity = Depends(require_roles("admin", "staff"))):
    item = _get_food_item(db, item_id)
    updates = {k: v for k, v in data.dict(exclude_unset=True).items() if v is not None}
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    for key, value in updates.items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    redis_client.invalidate_food_items_cache()
    return {"success": True, "message": "Food item updated successfully", "data": {"item": food_item_to_dict(item)}}


@router.delete("/items/{item_id}")
def delete_food_item(item_id: int, db: Session = Depends(get_db),
                     identity: Identity = Depends(require_roles("admin", "staff"))):
    item = _get_food_item(db, item_id)
    in_orders = db.query(models.FoodOrderItem).filter(models.FoodOrderItem.food_item_id == item.id).count()
    if in_orders:
        # Позиция уже есть в заказах: снимаем с продажи вместо удаления
        item.available = False
        db.commit()
        redis_client.invalidate_food_items_cache()
        return {"success": True, "message": "Food item is used in orders and was marked unavailable"}

    db.delete(item)
    db.commit()
    redis_client.invalidate_food_items_cache()
    return {"success": True, "message": "Food item deleted successfully"}


# ========== Заказы ==========

@router.get("/orders")
def get_orders(status: Optional[str] = None, db: Session = Depends(get_db),
               identity: Identity = Depends(get_identity)):
    orders = order_service.list_orders(db, identity, status)
    return {"success": True, "data": {"orders": [order_service.order_to_dict(o) for o in orders]}}


@router.get("/orders/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    order = order_service.get_order(db, identity, order_id)
    return {"success": True, "data": {"order": order_service.order_to_dict(order)}}


@router.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(data: OrderCreate, db: Session = Depends(get_db),
                 identity: Optional[Identity] = Depends(get_optional_identity)):
    order = order_service.create_order(db, identity, data)
    return {
        "success": True,
        "message": "Order created successfully",
        "data": {"order": order_service.order_to_dict(order)},
    }


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: int, data: StatusUpdate, db: Session = Depends(get_db),
                        identity: Identity = Depends(get_identity)):
    order = order_service.update_order_status(db, identity, order_id, data.status)
    return {
        "success": True,
        "message": "Order status updated successfully",
        "data": {"order": order_service.order_to_dict(order)},
    }
