from minimerge.mapper import Mapper
from minimerge.orm_types import Column, Relationship
from minimerge.states import ObjectState

class MiniBase:
    _registry = {}

    def __repr__(self):
        pk_val = self.__dict__.get(self._mapper.pk) or "New"
        return f"<{self.__class__.__name__}(id={pk_val})>"

    def __init__(self, **kwargs):
        object.__setattr__(self, '_orm_state', ObjectState.TRANSIENT)
        object.__setattr__(self, '_session', None)
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        columns = {
            name: col
            for name, col in cls.__dict__.items()
            if isinstance(col, Column)
        }

        relationships = {
            name: rel
            for name, rel in cls.__dict__.items()
            if isinstance(rel, Relationship)
        }

        meta_cls = getattr(cls, "Meta", None)
        meta_attrs = {}
        if meta_cls:
            for attr in dir(meta_cls):
                if not attr.startswith('_'):
                    meta_attrs[attr] = getattr(meta_cls, attr)

        cls._mapper = Mapper(cls, columns, relationships, meta_attrs)
        MiniBase._registry[cls] = cls._mapper

    def __getattribute__(self, name):
        if name.startswith('_') or name == 'Meta':
            return object.__getattribute__(self, name)

        mapper = object.__getattribute__(self, '_mapper')
        if name in mapper.columns:
            return object.__getattribute__(self, '__dict__').get(name)
        if name in mapper.relationships:
            return self._load_relationship(mapper.relationships[name])
        return object.__getattribute__(self, name)

    def __setattr__(self, name, value):
        mapper = self._mapper
        if name == mapper.pk:
            current_id = self.__dict__.get(name)
            if self._orm_state in (ObjectState.PERSISTENT, ObjectState.DELETED) and current_id is not None:
                if current_id != value:
                    raise AttributeError(
                        f"Critical error: Cannot change primary key '{name}' "
                        f"for {self.__class__.__name__} after it has been persisted."
                    )

        rel = mapper.relationships.get(name)
        if rel is not None:
            self._assign_relationship(rel, value)
            return

        object.__setattr__(self, name, value)

    def _assign_relationship(self, rel, value):
        if rel.r_type != "belongs-to":
            raise AttributeError(
                f"{rel.r_type} relationship '{rel.name}' is read-only; "
                f"assign the owner on the {rel.class_name} side instead"
            )
        self.__dict__[rel.name] = value
        if value is None:
            self.__dict__[rel.foreign_key] = None
            if rel.foreign_type:
                self.__dict__[rel.foreign_type] = None
            return
        self.__dict__[rel.foreign_key] = value.__dict__.get(value._mapper.pk)
        if rel.foreign_type:
            self.__dict__[rel.foreign_type] = value.__class__.__name__

    def _load_relationship(self, rel):
        if rel.r_type == "belongs-to":
            return self._load_owner(rel)

        session = self._session
        pk_val = self.__dict__.get(self._mapper.pk)
        if session is None or pk_val is None:
            return None if rel.r_type == "has-one" else []

        if rel.through:
            return self._load_through(rel)

        filters = {rel.foreign_key: pk_val}
        if rel.foreign_type:
            filters[rel.foreign_type] = self.__class__.__name__
        query = session.query(rel._resolved_target).filter(**filters)
        if rel.r_type == "has-one":
            return query.first()
        return query.all()

    def _load_owner(self, rel):
        fk_val = self.__dict__.get(rel.foreign_key)
        cached = self.__dict__.get(rel.name)
        if cached is not None:
            cached_pk = cached.__dict__.get(cached._mapper.pk)
            if cached_pk is None or cached_pk == fk_val:
                return cached

        session = self._session
        if session is None or fk_val is None:
            return None
        if rel.polymorphic:
            type_name = self.__dict__.get(rel.foreign_type)
            if not type_name:
                return None
            target_cls = Mapper.class_for_name(type_name)
        else:
            target_cls = rel._resolved_target
        return session.get(target_cls, fk_val)

    def _load_through(self, rel):
        source = self._mapper.source_relationship(rel)
        intermediates = getattr(self, rel.through)
        if intermediates is None:
            return []
        if not isinstance(intermediates, list):
            intermediates = [intermediates]

        results = []
        for obj in intermediates:
            value = getattr(obj, source.name)
            if isinstance(value, list):
                results.extend(value)
            elif value is not None:
                results.append(value)
        return results
