from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from core.database import get_session
from core.security import decode_token
from models import AppUser, StaffMember
from schemas.schemas import Actor, BoundStaff, Owner

# JWT handling
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login")

@dataclass
class Identity:
    # For staff, app_user is the owner's row
    app_user: Optional[AppUser] = None
    staff_member: Optional[StaffMember] = None

    @property
    def owner_id(self) -> Optional[str]:
        if self.staff_member is not None and self.staff_member.owner_id:
            return self.staff_member.owner_id
        if self.app_user is not None:
            return self.app_user.id
        return None

def actor_from_identity(identity: Identity) -> Optional[Actor]:
    owner_id = identity.owner_id
    if not owner_id:
        return None
    staff = identity.staff_member
    if staff is not None and staff.branch_id:
        return BoundStaff(owner_id=owner_id, branch_id=staff.branch_id)
    return Owner(owner_id=owner_id)

def load_identity(session: Session, auth_uid: str, kind: Optional[str] = None) -> Identity:
    """Owner row first, then staff row with its owner's user row."""
    if kind != "staff":
        app_user = session.exec(select(AppUser).where(AppUser.uid == auth_uid)).first()
        if app_user:
            return Identity(app_user=app_user)

    staff = session.exec(select(StaffMember).where(StaffMember.auth_uid == auth_uid)).first()
    if staff:
        owner = session.get(AppUser, staff.owner_id)
        return Identity(app_user=owner, staff_member=staff)

    return Identity()

# Dependency
async def get_current_identity(token: str = Depends(oauth2_scheme), session: Session = Depends(get_session)) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if payload is None:
        raise credentials_exception

    auth_uid: str = payload.get("sub")
    if auth_uid is None:
        raise credentials_exception

    identity = load_identity(session, auth_uid, payload.get("kind"))
    if identity.app_user is None and identity.staff_member is None:
        raise credentials_exception

    return identity

async def get_current_actor(identity: Identity = Depends(get_current_identity)) -> Actor:
    actor = actor_from_identity(identity)
    if actor is None:
        raise HTTPException(status_code=403, detail="No owner account linked to this user")
    return actor
