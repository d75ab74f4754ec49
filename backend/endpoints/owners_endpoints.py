from fastapi import APIRouter, Query, Depends, HTTPException
from pydantic import BaseModel
from minimerge.session import Session
from models import Owner
from deps import get_session
from endpoints.merging import MergeRequest, run_merge

router = APIRouter()

class OwnerRegister(BaseModel):
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None


def _owner_to_dict(owner):
    return {
        "owner_id": owner.owner_id,
        "first_name": owner.first_name,
        "last_name": owner.last_name,
        "email": owner.email,
        "phone": owner.phone,
    }

@router.post("/api/owners")
def register_owner(owner: OwnerRegister, session: Session = Depends(get_session)):
    new_owner = Owner(
        first_name=owner.first_name,
        last_name=owner.last_name,
        email=owner.email,
        phone=owner.phone,
    )
    session.add(new_owner)
    session.commit()
    return {**_owner_to_dict(new_owner), "message": "Owner registered successfully"}

@router.get("/api/owners")
def get_owners(
    session: Session = Depends(get_session),
    last_name: str = Query(None),
    email: str = Query(None),
):
    q = session.query(Owner).order_by("owner_id")
    if last_name:
        q = q.filter(last_name=last_name)
    if email:
        q = q.filter(email=email)
    return [_owner_to_dict(o) for o in q.all()]

@router.get("/api/owners/{owner_id}")
def get_owner(owner_id: int, session: Session = Depends(get_session)):
    owner = session.get(Owner, owner_id)
    if not owner:
        raise HTTPException(status_code=404, detail="Owner not found")
    return {**_owner_to_dict(owner), "pet_ids": [p.pet_id for p in owner.pets]}

@router.post("/api/owners/merge")
def merge_owners(request: MergeRequest, session: Session = Depends(get_session)):
    """Fold a duplicate owner into another one; their pets move along."""
    return run_merge(session, Owner, request)
