import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel

def new_id() -> str:
    return str(uuid.uuid4())

class AppUser(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=new_id, primary_key=True)
    uid: str = Field(default_factory=new_id, unique=True, index=True) # Auth identity
    email: str = Field(unique=True, index=True)
    name: str = ""
    mobile_number: str = ""
    restaurant_name: str = ""
    restaurant_address: str = ""
    profile_complete: bool = False
    password_hash: Optional[str] = None

    # Subscription: trial -> active
    subscription_status: str = Field(default="trial")
    subscription_plan: str = Field(default="monthly")
    subscribed_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)

class Branch(SQLModel, table=True):
    __tablename__ = "branches"
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: str = Field(foreign_key="users.id", index=True)
    name: str
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

class StaffMember(SQLModel, table=True):
    __tablename__ = "staff_members"
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: str = Field(foreign_key="users.id", index=True)
    branch_id: Optional[str] = Field(default=None, foreign_key="branches.id", index=True)
    name: str
    email: str = Field(unique=True)
    username: str = Field(unique=True, index=True)
    role: str = Field(default="staff")
    modules: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    auth_uid: str = Field(default_factory=new_id, unique=True, index=True)
    password_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)

class Payment(SQLModel, table=True):
    __tablename__ = "payments"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_uid: str = Field(index=True)
    payment_id: str = Field(unique=True)
    order_id: Optional[str] = None
    amount: float # Major currency units (rupees, not paise)
    currency: str
    status: Optional[str] = None
    method: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

class UserPreference(SQLModel, table=True):
    __tablename__ = "user_preferences"
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class CacheEntry(SQLModel, table=True):
    __tablename__ = "cache_entries"
    bucket: str = Field(primary_key=True)
    request_key: str = Field(primary_key=True)
    status_code: int
    headers: str = Field(default="[]") # JSON list of [name, value] pairs
    vary: str = Field(default="{}") # JSON map of varied request header -> value at store time
    body: bytes = b""
    stored_at: datetime = Field(default_factory=datetime.utcnow)

class AppUserRead(SQLModel):
    id: str
    uid: str
    email: str
    name: str
    restaurant_name: str
    profile_complete: bool
    subscription_status: str
    subscribed_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None

class StaffMemberRead(SQLModel):
    id: str
    owner_id: str
    branch_id: Optional[str] = None
    name: str
    email: str
    username: str
    role: str
    modules: List[str] = []
