import sys
import os
from datetime import datetime, timedelta

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlmodel import Session, select

from core.database import engine, create_db_and_tables
from core.security import get_password_hash
from models import AppUser, Branch, StaffMember

DEMO_EMAIL = "tabil@tabill.com"
DEMO_PASSWORD = os.getenv("DEMO_PASSWORD", "veltron2025")
DEMO_BRANCHES = ["HSR Layout", "Indiranagar"]

def seed_demo():
    create_db_and_tables()

    with Session(engine) as session:
        owner = session.exec(select(AppUser).where(AppUser.email == DEMO_EMAIL)).first()
        now = datetime.utcnow()
        if not owner:
            owner = AppUser(email=DEMO_EMAIL)
        owner.name = "Tabill Demo"
        owner.restaurant_name = "Veltron Biryani House"
        owner.restaurant_address = "HSR Layout, Bengaluru"
        owner.profile_complete = True
        owner.password_hash = get_password_hash(DEMO_PASSWORD)
        owner.subscription_status = "active"
        owner.subscribed_at = now
        owner.subscription_ends_at = now + timedelta(days=30)
        session.add(owner)
        session.commit()
        session.refresh(owner)
        print(f"Owner ready: {owner.email} ({owner.id})")

        # Clear previous demo data so the seed stays idempotent
        for staff in session.exec(select(StaffMember).where(StaffMember.owner_id == owner.id)).all():
            session.delete(staff)
        for branch in session.exec(select(Branch).where(Branch.owner_id == owner.id)).all():
            session.delete(branch)
        session.commit()

        created = []
        for offset, name in enumerate(DEMO_BRANCHES):
            branch = Branch(owner_id=owner.id, name=name, created_at=now + timedelta(seconds=offset))
            session.add(branch)
            created.append(branch)
        session.commit()

        cashier = StaffMember(
            owner_id=owner.id,
            branch_id=created[0].id,
            name="Demo Cashier",
            email="cashier@tabill.com",
            username="cashier",
            role="cashier",
            modules=["billing", "tables"],
            password_hash=get_password_hash(DEMO_PASSWORD),
        )
        session.add(cashier)
        session.commit()
        print(f"Seeded {len(created)} branches and 1 staff member.")

if __name__ == "__main__":
    seed_demo()
