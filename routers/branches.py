from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from core.database import get_session
from core.logger import get_logger
from models import Branch
from schemas.schemas import Actor, ActiveBranchState, ActiveBranchUpdate, BoundStaff, BranchCreate, BranchOption
from services.auth_service import get_current_actor
from services.branch_resolver import ActiveBranchResolver
from services.branch_store import SQLBranchStore, SQLPreferenceStore

logger = get_logger(__name__)

router = APIRouter(prefix="/api/branches", tags=["branches"])

def get_resolver(
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session)
) -> ActiveBranchResolver:
    return ActiveBranchResolver(actor, SQLBranchStore(session), SQLPreferenceStore(session))

def get_branch_manager(actor: Actor = Depends(get_current_actor)) -> Actor:
    if isinstance(actor, BoundStaff):
        raise HTTPException(status_code=403, detail="Not authorized")
    return actor

@router.get("", response_model=dict)
async def list_branches(
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_current_actor)
):
    branches = await SQLBranchStore(session).list_branches(actor.owner_id)
    return {"success": True, "data": branches}

@router.post("", response_model=dict)
async def create_branch(
    branch_in: BranchCreate,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_branch_manager)
):
    name = branch_in.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Branch name is required")

    branch = Branch(owner_id=actor.owner_id, name=name, address=branch_in.address)
    session.add(branch)
    session.commit()
    session.refresh(branch)
    logger.info(f"Branch {branch.id} created for owner {actor.owner_id}")

    return {"success": True, "message": "Branch created successfully", "data": BranchOption(id=branch.id, name=branch.name)}

@router.delete("/{branch_id}", response_model=dict)
async def delete_branch(
    branch_id: str,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_branch_manager)
):
    branch = session.get(Branch, branch_id)
    if not branch or branch.owner_id != actor.owner_id:
        raise HTTPException(status_code=404, detail="Branch not found")

    session.delete(branch)
    session.commit()
    logger.info(f"Branch {branch_id} deleted by owner {actor.owner_id}")

    return {"success": True, "message": "Branch deleted successfully"}

@router.get("/active", response_model=ActiveBranchState)
async def get_active_branch(resolver: ActiveBranchResolver = Depends(get_resolver)):
    return await resolver.resolve()

@router.put("/active", response_model=ActiveBranchState)
async def set_active_branch(
    payload: ActiveBranchUpdate,
    resolver: ActiveBranchResolver = Depends(get_resolver)
):
    if resolver.is_readonly:
        raise HTTPException(status_code=403, detail="Branch selection is fixed for this user")

    await resolver.resolve()
    if not any(b.id == payload.branchId for b in resolver.branches):
        raise HTTPException(status_code=404, detail="Branch not found")

    return resolver.set_active_branch_id(payload.branchId)

@router.post("/active/reload", response_model=ActiveBranchState)
async def reload_branches(resolver: ActiveBranchResolver = Depends(get_resolver)):
    return await resolver.reload()
