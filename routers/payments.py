import json
from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from core.config import settings
from core.database import get_session
from core.logger import get_logger
from schemas.schemas import SubscriptionStatus
from services.auth_service import Identity, get_current_identity
from services.payment_gateway import PaymentGateway, describe_gateway_error, get_payment_gateway
from services.subscription_service import (
    activate_subscription,
    build_order_options,
    record_payment,
    verify_signature,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])

@router.post("/razorpay")
async def create_order(
    request: Request,
    session: Session = Depends(get_session),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway)
):
    try:
        payload = await request.json()
        amount = payload.get("amount")
        currency = payload.get("currency")
        user_id = payload.get("userId")

        if not amount or not currency or not user_id:
            return JSONResponse(
                status_code=400,
                content={"error": "Missing required parameters: amount, currency, or userId"},
            )

        if gateway is None:
            return JSONResponse(status_code=500, content={"error": "Razorpay keys are not configured"})

        options = build_order_options(session, amount, currency, user_id)
        order = gateway.create_order(options)

        if not order:
            logger.error("Razorpay order creation failed: No order returned from Razorpay.")
            return JSONResponse(status_code=500, content={"error": "Razorpay failed to create an order."})

        logger.info(f"Razorpay order {order.get('id')} created for user {user_id}")
        return order

    except Exception as e:
        logger.error(f"Razorpay order creation failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to create Razorpay order.", "details": describe_gateway_error(e)},
        )

@router.post("/razorpay-webhook")
async def razorpay_webhook(request: Request, session: Session = Depends(get_session)):
    secret = settings.RAZORPAY_WEBHOOK_SECRET
    if not secret:
        logger.error("Razorpay webhook secret is not set.")
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})

    body = await request.body()
    signature = request.headers.get("x-razorpay-signature")
    if not signature:
        return JSONResponse(status_code=400, content={"error": "Signature missing"})

    try:
        if not verify_signature(body, signature, secret):
            return JSONResponse(status_code=403, content={"error": "Invalid signature"})

        event = json.loads(body)

        if event.get("event") == "payment.captured":
            payment = event["payload"]["payment"]["entity"]
            user_id = (payment.get("notes") or {}).get("userId")

            if not user_id:
                logger.error(f"Webhook Error: userId not found in payment notes. Payment: {payment.get('id')}")
                return {"status": "ok"}

            try:
                activate_subscription(session, str(user_id))
            except Exception as e:
                session.rollback()
                logger.error(f"Failed updating user subscription: {e}")

            try:
                record_payment(session, str(user_id), payment)
            except Exception as e:
                session.rollback()
                logger.warning(f"Skipping payment insert: {e}")

            logger.info(f"Successfully updated subscription for user: {user_id}")

        return {"status": "ok"}

    except Exception as e:
        logger.error(f"Webhook processing error: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Webhook handler failed", "details": str(e) or "An unknown error occurred"},
        )

@router.get("/subscription", response_model=SubscriptionStatus)
async def get_subscription(identity: Identity = Depends(get_current_identity)):
    user = identity.app_user
    if user is None:
        return SubscriptionStatus(status="none")
    return SubscriptionStatus(
        status=user.subscription_status,
        subscribedAt=user.subscribed_at,
        endsAt=user.subscription_ends_at,
    )
