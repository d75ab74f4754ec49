from fastapi import APIRouter, Depends
from pydantic import BaseModel
from minimerge.session import Session
from models import Vet
from deps import get_session

router = APIRouter()

class VetCreate(BaseModel):
    first_name: str
    last_name: str
    license: str | None = None

@router.post("/api/vets")
def add_vet(vet: VetCreate, session: Session = Depends(get_session)):
    new_vet = Vet(first_name=vet.first_name, last_name=vet.last_name, license=vet.license)
    session.add(new_vet)
    session.commit()
    return {
        "vet_id": new_vet.vet_id,
        "first_name": new_vet.first_name,
        "last_name": new_vet.last_name,
        "license": new_vet.license,
        "message": "Vet added"
    }
