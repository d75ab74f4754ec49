from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from minimerge.session import Session
from models import Pet, Owner
from deps import get_session
from endpoints.merging import MergeRequest, run_merge

router = APIRouter()

class PetCreate(BaseModel):
    owner_id: int
    name: str
    species: str | None = None
    breed: str | None = None
    birth_date: str | None = None


def _pet_to_dict(pet):
    return {
        "pet_id": pet.pet_id,
        "owner_id": pet.owner_id,
        "name": pet.name,
        "species": pet.species,
        "breed": pet.breed,
        "birth_date": pet.birth_date,
    }

@router.post("/api/pets")
def add_pet(pet: PetCreate, session: Session = Depends(get_session)):
    owner = session.get(Owner, pet.owner_id)
    if not owner:
        raise HTTPException(status_code=404, detail="Owner not found")
    new_pet = Pet(
        owner=owner,
        name=pet.name,
        species=pet.species,
        breed=pet.breed,
        birth_date=pet.birth_date
    )
    session.add(new_pet)
    session.commit()
    return {**_pet_to_dict(new_pet), "message": "Pet added"}

@router.get("/api/pets/{pet_id}")
def get_pet(pet_id: int, session: Session = Depends(get_session)):
    pet = session.get(Pet, pet_id)
    if not pet:
        raise HTTPException(status_code=404, detail="Pet not found")
    return {**_pet_to_dict(pet), "visit_ids": [v.visit_id for v in pet.visits]}

@router.post("/api/pets/merge")
def merge_pets(request: MergeRequest, session: Session = Depends(get_session)):
    """Fold a duplicate pet record into another one; its visit history moves along."""
    return run_merge(session, Pet, request)
