from datetime import datetime
from typing import List, Optional
from sqlmodel import Session, select

from models import Branch, UserPreference
from schemas.schemas import BranchOption

class SQLBranchStore:
    def __init__(self, session: Session):
        self.session = session

    async def list_branches(self, owner_id: str) -> List[BranchOption]:
        rows = self.session.exec(
            select(Branch)
            .where(Branch.owner_id == owner_id)
            .order_by(Branch.created_at.desc())
        ).all()
        return [BranchOption(id=b.id, name=b.name) for b in rows]

class SQLPreferenceStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Optional[str]:
        pref = self.session.get(UserPreference, key)
        return pref.value if pref else None

    def set(self, key: str, value: str) -> None:
        pref = self.session.get(UserPreference, key)
        if pref is None:
            pref = UserPreference(key=key, value=value)
        else:
            pref.value = value
            pref.updated_at = datetime.utcnow()
        self.session.add(pref)
        self.session.commit()

    def remove(self, key: str) -> None:
        pref = self.session.get(UserPreference, key)
        if pref is not None:
            self.session.delete(pref)
            self.session.commit()
