import re
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session, or_, select

from core.database import get_session
from core.logger import get_logger
from core.security import get_password_hash
from models import Branch, StaffMember
from services.auth_service import Identity, get_current_identity

logger = get_logger(__name__)

router = APIRouter(prefix="/api/staff", tags=["staff"])

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
STAFF_EMAIL_DOMAIN = "tabill.com"

REQUIRED_FIELDS = [
    ("ownerId", "Owner ID is required"),
    ("username", "Username is required"),
    ("password", "Password is required"),
    ("name", "Name is required"),
    ("role", "Role is required"),
    ("branchId", "Branch ID is required"),
]

def _error(status_code: int, error: str, details) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})

@router.post("/create")
async def create_staff(
    request: Request,
    session: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity)
):
    try:
        body = await request.json() or {}

        validation_errors = [message for field, message in REQUIRED_FIELDS if not body.get(field)]
        if validation_errors:
            return _error(400, "Validation failed", validation_errors)

        owner_id = body["ownerId"]
        branch_id = body["branchId"]
        username = str(body["username"])

        if identity.staff_member is not None or identity.app_user is None or identity.app_user.id != owner_id:
            return _error(403, "Not authorized", "Only the owner can add staff members")

        # Email-like usernames keep their local part
        processed_username = username.split("@")[0] if "@" in username else username
        if not USERNAME_PATTERN.match(processed_username):
            return _error(400, "Invalid username", "Username can only contain letters, numbers, dots, underscores, and hyphens")

        email = username if "@" in username else f"{processed_username}@{STAFF_EMAIL_DOMAIN}"

        branch = session.exec(
            select(Branch).where(Branch.id == branch_id, Branch.owner_id == owner_id)
        ).first()
        if not branch:
            return _error(400, "Invalid branch", "Branch not found or not owned by this owner")

        duplicate = session.exec(
            select(StaffMember).where(or_(StaffMember.username == processed_username, StaffMember.email == email))
        ).first()
        if duplicate:
            logger.error(f"Staff creation database error: {processed_username} already exists")
            return _error(500, "Failed to create staff member", "A staff member with this username or email already exists")

        staff = StaffMember(
            owner_id=owner_id,
            branch_id=branch_id,
            name=body["name"],
            email=email,
            role=body["role"],
            modules=list(body.get("modules") or []),
            username=processed_username,
            password_hash=get_password_hash(str(body["password"])),
        )
        session.add(staff)
        session.commit()
        logger.info(f"Staff member {processed_username} created for branch {branch_id}")

        return {"ok": True, "message": "Staff member created successfully"}

    except Exception as e:
        session.rollback()
        logger.error(f"Unexpected staff creation error: {e}", exc_info=True)
        return _error(500, "Unexpected error", str(e) or "Unknown error occurred")
