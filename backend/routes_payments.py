from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

import payment_service
from auth import Identity
from auth_service import get_identity, get_optional_identity
from database import get_db
from payment_gateway import StripeGateway, get_payment_gateway
from schemas import PaymentConfirm, PaymentIntentCreate

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-intent")
def create_intent(data: PaymentIntentCreate, db: Session = Depends(get_db),
                  gateway: StripeGateway = Depends(get_payment_gateway),
                  identity: Optional[Identity] = Depends(get_optional_identity)):
    target = payment_service.PaymentTarget.from_ids(data.booking_id, data.reservation_id, data.order_id)
    payment, intent = payment_service.create_payment_intent(
        db, gateway, identity, data.amount, data.currency, target, data.metadata
    )
    return {
        "success": True,
        "data": {
            "paymentIntent": {"clientSecret": intent.client_secret, "id": intent.id},
            "paymentId": payment.id,
        },
    }


@router.post("/confirm")
def confirm(data: PaymentConfirm, db: Session = Depends(get_db),
            gateway: StripeGateway = Depends(get_payment_gateway)):
    payment, succeeded = payment_service.confirm_payment(db, gateway, data.payment_intent_id, data.payment_id)
    if not succeeded:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Payment not completed", "data": {"status": payment.status}},
        )
    return {
        "success": True,
        "message": "Payment confirmed successfully",
        "data": {"payment": payment_service.payment_to_dict(payment)},
    }


@router.post("/webhook")
async def webhook(request: Request, stripe_signature: Optional[str] = Header(None),
                  db: Session = Depends(get_db), gateway: StripeGateway = Depends(get_payment_gateway)):
    payload = await request.body()
    # Запросы к БД и процессору блокирующие: уводим их с event loop
    result = await run_in_threadpool(payment_service.handle_webhook_event, db, gateway, payload, stripe_signature)
    return {"success": True, "data": result}


@router.get("")
def get_payments(status: Optional[str] = None, db: Session = Depends(get_db),
                 identity: Identity = Depends(get_identity)):
    payments = payment_service.list_payments(db, identity, status)
    return {"success": True, "data": {"payments": [payment_service.payment_to_dict(p) for p in payments]}}


@router.get("/{payment_id}")
def get_payment(payment_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_identity)):
    payment = payment_service.get_payment(db, identity, payment_id)
    return {"success": True, "data": {"payment": payment_service.payment_to_dict(payment)}}
