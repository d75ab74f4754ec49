from typing import Literal

from fastapi import APIRouter, Query, Depends, HTTPException
from pydantic import BaseModel
from minimerge.session import Session
from models import Visit, Pet, Vet
from deps import get_session

router = APIRouter()

class VisitCreate(BaseModel):
    pet_id: int
    vet_id: int
    date: str
    reason: str
    paid: int = 0


def _visit_to_dict(visit):
    return {
        "visit_id": visit.visit_id,
        "pet_id": visit.pet_id,
        "vet_id": visit.vet_id,
        "date": visit.date,
        "reason": visit.reason,
        "paid": visit.paid,
    }

@router.post("/api/visits")
def add_visit(visit: VisitCreate, session: Session = Depends(get_session)):
    pet = session.get(Pet, visit.pet_id)
    vet = session.get(Vet, visit.vet_id)
    if not pet or not vet:
        raise HTTPException(status_code=404, detail="Pet or vet not found")
    new_visit = Visit(pet=pet, vet=vet, date=visit.date, reason=visit.reason, paid=visit.paid)
    session.add(new_visit)
    session.commit()
    return {**_visit_to_dict(new_visit), "message": "Visit added"}

@router.get("/api/visits")
def get_visits(
    session: Session = Depends(get_session),
    pet_id: int = Query(None),
    vet_id: int = Query(None),
    order_dir: Literal["ASC", "DESC"] = Query("ASC"),
):
    q = session.query(Visit).order_by("date", order_dir)
    if pet_id is not None:
        q = q.filter(pet_id=pet_id)
    if vet_id is not None:
        q = q.filter(vet_id=vet_id)
    return [_visit_to_dict(v) for v in q.all()]
