from datetime import datetime
from typing import List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict

# --- Actor ---
class Owner(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["owner"] = "owner"
    owner_id: str

class BoundStaff(BaseModel):
    """A staff member pinned to one branch; cannot change the selection."""
    model_config = ConfigDict(frozen=True)
    kind: Literal["bound_staff"] = "bound_staff"
    owner_id: str
    branch_id: str

Actor = Union[Owner, BoundStaff]

# --- Branch Schemas ---
class BranchOption(BaseModel):
    id: str
    name: str

class BranchCreate(BaseModel):
    name: str
    address: Optional[str] = None

class ActiveBranchUpdate(BaseModel):
    branchId: str

class ActiveBranchState(BaseModel):
    ownerId: Optional[str] = None
    branches: List[BranchOption] = []
    activeBranchId: Optional[str] = None
    isReadonly: bool = False
    loading: bool = False
    needsFirstBranch: bool = False

# --- Auth Schemas ---
class LoginRequest(BaseModel):
    username: str
    password: str

class SignupRequest(BaseModel):
    email: str
    password: str
    name: str = ""
    restaurantName: str = ""

# --- Payment Schemas ---
class SubscriptionStatus(BaseModel):
    status: str
    subscribedAt: Optional[datetime] = None
    endsAt: Optional[datetime] = None
