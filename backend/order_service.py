import logging
from typing import Optional

from sqlalchemy.orm import Session

import models
import pricing
from auth import Identity, resolve_customer_id
from errors import Forbidden, NotFound, ValidationFailed
from schemas import OrderCreate

logger = logging.getLogger("OrderService")


def order_to_dict(order: models.FoodOrder) -> dict:
    user = order.user
    items = []
    for item in order.items:
        food = item.food_item
        items.append({
            "id": item.id,
            "foodItemId": item.food_item_id,
            "quantity": item.quantity,
            "price": item.price,
            "name": food.name if food else "Unknown",
            "image": food.image if food else None,
            "category": food.category if food else None,
        })
    return {
        "id": order.id,
        "userId": order.user_id,
        "status": order.status,
        "totalAmount": order.total_amount,
        "roomNumber": order.room_number,
        "createdAt": order.created_at,
        "userName": user.name if user else None,
        "userEmail": user.email if user else None,
        "items": items,
    }


def _get_order(db: Session, order_id: int) -> models.FoodOrder:
    order = db.query(models.FoodOrder).filter(models.FoodOrder.id == order_id).first()
    if not order:
        raise NotFound("Order not found")
    return order


def list_orders(db: Session, identity: Identity, status: Optional[str] = None):
    query = db.query(models.FoodOrder)
    if not identity.is_staff:
        query = query.filter(models.FoodOrder.user_id == identity.user_id)
    if status:
        query = query.filter(models.FoodOrder.status == status)
    return query.order_by(models.FoodOrder.created_at.desc(), models.FoodOrder.id.desc()).all()


def get_order(db: Session, identity: Identity, order_id: int) -> models.FoodOrder:
    order = _get_order(db, order_id)
    if not identity.can_access(order.user_id):
        raise Forbidden("Access denied")
    return order


def create_order(db: Session, identity: Optional[Identity], data: OrderCreate) -> models.FoodOrder:
    user_id = resolve_customer_id(db, identity, data.user_id)

    # Сначала проверяем все позиции: одна недоступная позиция отменяет весь заказ
    lines = []
    for item in data.items:
        food = db.query(models.FoodItem).filter(
            models.FoodItem.id == item.food_item_id,
            models.FoodItem.available == True,  # noqa: E712
        ).first()
        if not food:
            raise ValidationFailed(f"Food item {item.food_item_id} not found or unavailable")
        lines.append((food, item.quantity))

    total_amount = pricing.order_total((food.price, quantity) for food, quantity in lines)

    order = models.FoodOrder(
        user_id=user_id,
        status="pending",
        total_amount=total_amount,
        room_number=data.room_number,
    )
    order.items = [
        models.FoodOrderItem(food_item_id=food.id, quantity=quantity, price=food.price)
        for food, quantity in lines
    ]

    try:
        db.add(order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(f"Food order #{order.id} created with {len(lines)} item(s), total {order.total_amount}")
    return order


def update_order_status(db: Session, identity: Identity, order_id: int, status: str) -> models.FoodOrder:
    if not identity.is_staff:
        raise Forbidden("Access denied")
    if status not in models.ORDER_STATUSES:
        raise ValidationFailed(f"Invalid status. Allowed: {', '.join(models.ORDER_STATUSES)}")

    order = _get_order(db, order_id)
    logger.info(f"Food order #{order.id}: {order.status} -> {status}")
    order.status = status
    db.commit()
    db.refresh(order)
    return order
