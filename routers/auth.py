from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, or_, select
from typing import Any, Optional

from core.database import get_session
from core.logger import get_logger
from core.security import verify_password, create_access_token, get_password_hash
from models import AppUser, AppUserRead, StaffMember, StaffMemberRead
from schemas.schemas import LoginRequest, SignupRequest
from services.auth_service import Identity, get_current_identity
from pydantic import BaseModel

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

class LoginResponse(BaseModel):
    success: bool
    token: str
    user: Any

class ProfileResponse(BaseModel):
    appUser: Optional[AppUserRead] = None
    staffMember: Optional[StaffMemberRead] = None

def _token_for(auth_uid: str, kind: str) -> str:
    return create_access_token(data={"sub": auth_uid, "kind": kind})

@router.post("/signup", response_model=LoginResponse)
async def signup(
    signup_data: SignupRequest,
    session: Session = Depends(get_session)
):
    email = signup_data.email.strip().lower()
    existing = session.exec(select(AppUser).where(AppUser.email == email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = AppUser(
        email=email,
        name=signup_data.name,
        restaurant_name=signup_data.restaurantName,
        password_hash=get_password_hash(signup_data.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"Owner signed up: {user.email}")

    return {
        "success": True,
        "token": _token_for(user.uid, "owner"),
        "user": AppUserRead.model_validate(user, from_attributes=True),
    }

@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    session: Session = Depends(get_session)
):
    identifier = login_data.username.strip()

    owner = session.exec(select(AppUser).where(AppUser.email == identifier.lower())).first()
    if owner and verify_password(login_data.password, owner.password_hash):
        owner.updated_at = datetime.utcnow()
        session.add(owner)
        session.commit()
        session.refresh(owner)
        logger.info(f"Owner logged in: {owner.email}")
        return {
            "success": True,
            "token": _token_for(owner.uid, "owner"),
            "user": AppUserRead.model_validate(owner, from_attributes=True),
        }

    staff = session.exec(
        select(StaffMember).where(or_(StaffMember.username == identifier, StaffMember.email == identifier.lower()))
    ).first()
    if staff and verify_password(login_data.password, staff.password_hash):
        logger.info(f"Staff logged in: {staff.username}")
        return {
            "success": True,
            "token": _token_for(staff.auth_uid, "staff"),
            "user": StaffMemberRead.model_validate(staff, from_attributes=True),
        }

    logger.warning(f"Failed login attempt for user: {identifier}")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect username or password",
        headers={"WWW-Authenticate": "Bearer"},
    )

@router.get("/profile", response_model=ProfileResponse)
async def get_profile(identity: Identity = Depends(get_current_identity)):
    return {
        "appUser": AppUserRead.model_validate(identity.app_user, from_attributes=True) if identity.app_user else None,
        "staffMember": StaffMemberRead.model_validate(identity.staff_member, from_attributes=True) if identity.staff_member else None,
    }
