RELATIONSHIP_TYPES = ("belongs-to", "has-one", "has-many")


class Relationship:
    def __init__(self, target=None, r_type="belongs-to", foreign_key=None, through=None,
                 polymorphic=False, as_=None, cascade_delete=False):
        if r_type not in RELATIONSHIP_TYPES:
            raise ValueError(f"Unknown relationship type: {r_type}")
        if polymorphic and r_type != "belongs-to":
            raise ValueError("Only belongs-to relationships can be polymorphic")
        if target is None and not polymorphic:
            raise ValueError(f"{r_type} relationship needs a target")

        self.target_table = target
        self.r_type = r_type
        self.foreign_key = foreign_key
        self.through = through
        self.polymorphic = polymorphic
        self.as_ = as_
        self.cascade_delete = cascade_delete
        self.foreign_type = None
        self.name = None
        self._resolved_target = None

    @property
    def class_name(self):
        if self.polymorphic:
            return None
        if self._resolved_target is not None:
            return self._resolved_target.__name__
        if isinstance(self.target_table, type):
            return self.target_table.__name__
        return self.target_table

    @property
    def options(self):
        return {
            "through": self.through,
            "polymorphic": self.polymorphic,
            "as": self.as_,
            "cascade_delete": self.cascade_delete,
        }

    def __repr__(self):
        target = self.class_name or "polymorphic"
        parts = [self.r_type, f"target={target}", f"foreign_key={self.foreign_key}"]
        if self.through:
            parts.append(f"through={self.through}")
        if self.foreign_type:
            parts.append(f"foreign_type={self.foreign_type}")
        return f"<Relationship {self.name} {', '.join(parts)}>"


class Column:
    def __init__(self, dtype, pk=False, nullable=True, unique=False, default=None):
        self.dtype = dtype
        self.pk = pk
        self.nullable = nullable
        self.unique = unique
        self.default = default

    def __repr__(self):
        return f"<{self.__class__.__name__} pk={self.pk} nullable={self.nullable}>"


class Text(Column):
    def __init__(self, pk=False, nullable=True, unique=False, default=None):
        super().__init__(str, pk, nullable, unique, default)


class Number(Column):
    def __init__(self, pk=False, nullable=True, unique=False, default=None):
        super().__init__(int, pk, nullable, unique, default)


class ForeignKey(Column):
    """Column added for a belongs-to relationship. target_table is None for polymorphic keys."""

    def __init__(self, target_table, target_column, nullable=True, unique=False):
        super().__init__(int, pk=False, nullable=nullable, unique=unique)
        self.target_table = target_table
        self.target_column = target_column
