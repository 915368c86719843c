import calendar
import hashlib
import hmac
import time
from datetime import datetime
from typing import Optional
from sqlmodel import Session, select

from core.logger import get_logger
from models import AppUser, Payment

logger = get_logger(__name__)

def build_order_options(session: Session, amount, currency: str, user_id) -> dict:
    receipt_id = f"sub_{str(user_id)[:8]}_{int(time.time() * 1000)}"
    notes = {"userId": user_id, "type": "subscription"}

    try:
        user = session.exec(select(AppUser).where(AppUser.uid == str(user_id))).first()
        if user:
            notes["customer_name"] = user.name
            if user.email:
                notes["customer_email"] = user.email
    except Exception as e:
        logger.warning(f"Could not fetch user details for Razorpay order, proceeding without them: {e}")

    return {
        "amount": amount,
        "currency": currency,
        "receipt": receipt_id,
        "notes": notes,
    }

def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    # Compared as bytes: the header may carry non-ASCII text
    return hmac.compare_digest(digest.encode("ascii"), signature.encode("utf-8", "replace"))

def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of shorter months."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)

def activate_subscription(session: Session, user_uid: str, now: Optional[datetime] = None) -> Optional[AppUser]:
    now = now or datetime.utcnow()
    user = session.exec(select(AppUser).where(AppUser.uid == user_uid)).first()
    if user is None:
        logger.error(f"Failed updating user subscription: no user with uid {user_uid}")
        return None

    user.subscription_status = "active"
    user.subscribed_at = now
    user.subscription_ends_at = add_months(now, 1)
    user.updated_at = now
    session.add(user)
    session.commit()
    session.refresh(user)
    return user

def record_payment(session: Session, user_uid: str, payment: dict) -> Payment:
    created_ts = payment.get("created_at")
    record = Payment(
        user_uid=user_uid,
        payment_id=payment["id"],
        order_id=payment.get("order_id"),
        amount=(payment.get("amount") or 0) / 100,
        currency=payment.get("currency") or "INR",
        status=payment.get("status"),
        method=payment.get("method"),
        created_at=datetime.utcfromtimestamp(created_ts) if created_ts else datetime.utcnow(),
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return record
