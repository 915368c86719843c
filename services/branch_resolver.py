"""
Active-branch resolution.

Decides which branch the current actor's UI is scoped to. Bound staff are
pinned to their branch; owners pick freely and the pick is remembered under
``activeBranch:<ownerId>`` in a preference store.
"""
from typing import Dict, List, Optional, Protocol

from core.logger import get_logger
from schemas.schemas import Actor, ActiveBranchState, BoundStaff, BranchOption

logger = get_logger(__name__)

STORAGE_KEY_PREFIX = "activeBranch"

class BranchStore(Protocol):
    async def list_branches(self, owner_id: str) -> List[BranchOption]:
        """Branches of the owner, most recently created first."""
        ...

class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...

class InMemoryPreferenceStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)

def storage_key_for(owner_id: Optional[str]) -> str:
    return f"{STORAGE_KEY_PREFIX}:{owner_id}" if owner_id else STORAGE_KEY_PREFIX

class ActiveBranchResolver:
    def __init__(self, actor: Optional[Actor], branch_store: BranchStore, preferences: PreferenceStore):
        self.actor = actor
        self.branch_store = branch_store
        self.preferences = preferences

        self.branches: List[BranchOption] = []
        self.active_branch_id: Optional[str] = actor.branch_id if isinstance(actor, BoundStaff) else None
        self.loading = False
        self.needs_first_branch = False

        # Bumped by every load; only the newest load may write state
        self._generation = 0

    @property
    def owner_id(self) -> Optional[str]:
        return self.actor.owner_id if self.actor is not None else None

    @property
    def is_readonly(self) -> bool:
        return isinstance(self.actor, BoundStaff)

    @property
    def storage_key(self) -> str:
        return storage_key_for(self.owner_id)

    def state(self) -> ActiveBranchState:
        return ActiveBranchState(
            ownerId=self.owner_id,
            branches=list(self.branches),
            activeBranchId=self.active_branch_id,
            isReadonly=self.is_readonly,
            loading=self.loading,
            needsFirstBranch=self.needs_first_branch,
        )

    async def resolve(self) -> ActiveBranchState:
        actor = self.actor
        if actor is None or not actor.owner_id:
            return self.state()

        if isinstance(actor, BoundStaff):
            self.active_branch_id = actor.branch_id
            # List is for display only; selection stays pinned
            await self._load(apply_selection=False)
            return self.state()

        saved = self.preferences.get(self.storage_key)
        if saved:
            self.active_branch_id = saved
        await self._load(apply_selection=True)
        return self.state()

    async def reload(self) -> ActiveBranchState:
        await self._load(apply_selection=not self.is_readonly)
        return self.state()

    def set_active_branch_id(self, branch_id: str) -> ActiveBranchState:
        # Read-only actors are rejected by callers, not here
        self.active_branch_id = branch_id
        self.needs_first_branch = False
        self.preferences.set(self.storage_key, branch_id)
        return self.state()

    async def _load(self, apply_selection: bool) -> None:
        owner_id = self.owner_id
        if not owner_id:
            return

        self._generation += 1
        generation = self._generation
        self.loading = True
        try:
            try:
                options = await self.branch_store.list_branches(owner_id)
            except Exception as e:
                if generation != self._generation:
                    return
                logger.error(f"Error loading branches for owner {owner_id}: {e}")
                self.branches = []
                return

            if generation != self._generation:
                logger.info(f"Discarding superseded branch list for owner {owner_id}")
                return

            self.branches = list(options)
            if apply_selection:
                self._apply_selection()
        finally:
            if generation == self._generation:
                self.loading = False

    def _apply_selection(self) -> None:
        key = self.storage_key
        saved = self.preferences.get(key)

        if saved and any(b.id == saved for b in self.branches):
            self.active_branch_id = saved
            self.needs_first_branch = False
        elif self.branches:
            self.active_branch_id = self.branches[0].id
            self.needs_first_branch = False
            self.preferences.set(key, self.active_branch_id)
        else:
            # Owner has no branches yet
            self.active_branch_id = None
            self.needs_first_branch = True
            self.preferences.remove(key)
