from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass(frozen=True)
class AssociationInfo:
    name: str
    type: str
    related_type: Optional[str]
    foreign_key: str
    through: Optional[str] = None
    polymorphic: bool = False
    foreign_type: Optional[str] = None


def accept_all(assoc: AssociationInfo) -> bool:
    return True


def find_associations(model_class, filter: Optional[Callable[[AssociationInfo], bool]] = None) -> List[AssociationInfo]:
    """Describe the relationships declared on model_class, in declaration order.

    Only the ones for which filter(info) is truthy are returned.
    """
    filter = filter or accept_all
    associations = [
        AssociationInfo(
            name=rel.name,
            type=rel.r_type,
            related_type=rel.class_name,
            foreign_key=rel.foreign_key,
            through=rel.options["through"],
            polymorphic=bool(rel.options["polymorphic"]),
            foreign_type=rel.foreign_type,
        )
        for rel in model_class._mapper.reflect_on_all_associations()
    ]
    return [assoc for assoc in associations if filter(assoc)]
