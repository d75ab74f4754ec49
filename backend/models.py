from minimerge import MiniBase
from minimerge.orm_types import Text, Number, Relationship

class Owner(MiniBase):
    class Meta:
        table_name = "owners"
    owner_id = Number(pk=True)
    first_name = Text()
    last_name = Text()
    email = Text()
    phone = Text()
    pets = Relationship("Pet", r_type="has-many", cascade_delete=True)


class Vet(MiniBase):
    class Meta:
        table_name = "vets"
    vet_id = Number(pk=True)
    first_name = Text()
    last_name = Text()
    license = Text()
    visits = Relationship("Visit", r_type="has-many")


class Pet(MiniBase):
    class Meta:
        table_name = "pets"
    pet_id = Number(pk=True)
    owner = Relationship(Owner, r_type="belongs-to")
    name = Text()
    species = Text()
    breed = Text()
    birth_date = Text()
    visits = Relationship("Visit", r_type="has-many", cascade_delete=True)


class Visit(MiniBase):
    class Meta:
        table_name = "visits"
    visit_id = Number(pk=True)
    pet = Relationship(Pet, r_type="belongs-to")
    vet = Relationship(Vet, r_type="belongs-to")
    date = Text()
    reason = Text()
    paid = Number()
