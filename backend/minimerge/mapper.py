import re

from minimerge.orm_types import ForeignKey, Text


def snake_case(name):
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class Mapper:
    def __init__(self, cls, columns, relationships, meta_attrs):
        self.cls = cls
        self.meta = meta_attrs or {}

        self.pk = None
        self.declared_columns = dict(columns)
        self.columns = {}

        self.declared_relationships = dict(relationships)
        self.relationships = {}
        self._pending_relationships = []

        self._resolve_table_name()
        self._resolve_columns()
        self._resolve_pk()
        self._resolve_relationships()

    def __repr__(self):
        cols = ", ".join(self.columns.keys())
        rels = ", ".join(self.relationships.keys())
        return (
            f"<Mapper class={self.cls.__name__} table={self.table_name} "
            f"columns=[{cols}] pk={self.pk} relationships=[{rels}]>"
        )

    def _resolve_table_name(self):
        self.table_name = self.meta.get("table_name", snake_case(self.cls.__name__) + "s")

    def _resolve_columns(self):
        self.columns = dict(self.declared_columns)

    def _resolve_pk(self):
        pk_cols = [name for name, col in self.declared_columns.items() if col.pk]
        if not pk_cols:
            raise ValueError(f"Class {self.cls.__name__} has no primary key defined")
        if len(pk_cols) > 1:
            raise ValueError(f"Class {self.cls.__name__} declares more than one primary key: {pk_cols}")
        self.pk = pk_cols[0]

    def _resolve_relationships(self):
        """Fill in foreign keys from the declarations, defer targets that are not defined yet."""
        for name, rel in self.declared_relationships.items():
            rel.name = name
            self.relationships[name] = rel

            if rel.r_type == "belongs-to":
                self._add_belongs_to_columns(name, rel)
            elif rel.through is None:
                if rel.as_:
                    rel.foreign_key = rel.foreign_key or f"{rel.as_}_id"
                    rel.foreign_type = f"{rel.as_}_type"
                else:
                    rel.foreign_key = rel.foreign_key or f"{snake_case(self.cls.__name__)}_id"

            if rel.polymorphic:
                continue
            target_cls = self._resolve_target_class(rel.target_table)
            if target_cls is None:
                self._pending_relationships.append((name, rel))
                continue
            self._apply_relationship(rel, target_cls)

    def _add_belongs_to_columns(self, name, rel):
        rel.foreign_key = rel.foreign_key or f"{name}_id"
        if rel.foreign_key == name:
            raise ValueError(
                f"Foreign key '{rel.foreign_key}' of {self.cls.__name__}.{name} "
                f"cannot share the relationship's name"
            )
        declared = self.columns.get(rel.foreign_key)
        nullable = declared.nullable if declared is not None else True
        self.columns[rel.foreign_key] = ForeignKey(None, None, nullable=nullable)

        if rel.polymorphic:
            rel.foreign_type = f"{name}_type"
            self.columns.setdefault(rel.foreign_type, Text(nullable=nullable))

    @staticmethod
    def _resolve_target_class(target):
        if isinstance(target, type) and hasattr(target, "_mapper"):
            return target
        if isinstance(target, str):
            from minimerge.base import MiniBase
            for cls, mapper in MiniBase._registry.items():
                if cls.__name__ == target:
                    return cls
            for cls, mapper in MiniBase._registry.items():
                if mapper.table_name == target:
                    return cls
        return None

    def _apply_relationship(self, rel, target_cls):
        rel._resolved_target = target_cls
        if rel.r_type == "belongs-to":
            fk = self.columns[rel.foreign_key]
            fk.target_table = target_cls._mapper.table_name
            fk.target_column = target_cls._mapper.pk

    def _validate_relationships(self):
        for name, rel in self.relationships.items():
            if rel.r_type == "belongs-to":
                continue

            if rel.through:
                source = self.source_relationship(rel)
                rel.foreign_key = source.foreign_key
                rel.foreign_type = source.foreign_type
                continue

            target_mapper = rel._resolved_target._mapper
            for col in (rel.foreign_key, rel.foreign_type):
                if col and col not in target_mapper.columns:
                    raise ValueError(
                        f"{self.cls.__name__}.{name} expects column '{col}' "
                        f"on {target_mapper.table_name}"
                    )

    def source_relationship(self, rel):
        through = self.relationships.get(rel.through)
        if through is None:
            raise ValueError(
                f"{self.cls.__name__}.{rel.name} goes through unknown relationship '{rel.through}'"
            )
        intermediate = through._resolved_target._mapper
        source = intermediate.relationships.get(rel.name) or intermediate.relationships.get(rel.name.rstrip("s"))
        if source is None:
            raise ValueError(
                f"Cannot find source relationship '{rel.name}' on {intermediate.cls.__name__} "
                f"for {self.cls.__name__}.{rel.name}"
            )
        return source

    @staticmethod
    def finalize_mappers():
        """Resolve all deferred relationship targets and check the foreign keys they point at."""
        from minimerge.base import MiniBase

        for mapper in MiniBase._registry.values():
            resolved = []
            for name, rel in mapper._pending_relationships:
                target_cls = mapper._resolve_target_class(rel.target_table)
                if target_cls is not None:
                    mapper._apply_relationship(rel, target_cls)
                    resolved.append((name, rel))
            for item in resolved:
                mapper._pending_relationships.remove(item)

        for mapper in MiniBase._registry.values():
            if mapper._pending_relationships:
                pending = [(n, r.target_table) for n, r in mapper._pending_relationships]
                raise ValueError(f"Cannot resolve relationship target(s) after all models loaded: {mapper.cls.__name__} pending: {pending}")

        for mapper in MiniBase._registry.values():
            mapper._validate_relationships()

    def reflect_on_all_associations(self):
        Mapper.finalize_mappers()
        return list(self.relationships.values())

    @staticmethod
    def class_for_name(class_name):
        from minimerge.base import MiniBase
        for cls in MiniBase._registry:
            if cls.__name__ == class_name:
                return cls
        raise ValueError(f"No model registered under the name '{class_name}'")

    def _get_operation_columns(self, entity):
        data = {}
        for col_name, col_obj in self.columns.items():
            if col_name == self.pk:
                continue
            value = entity.__dict__.get(col_name)
            if value is None:
                value = self._related_key(entity, col_name)
            if value is None and col_obj.default is not None:
                value = col_obj.default
            if value is None and not col_obj.nullable:
                raise ValueError(f"Column '{col_name}' of {self.cls.__name__} cannot be NULL")
            data[col_name] = value
        return data

    def _related_key(self, entity, col_name):
        # e.g. a Post built with user=<User> before the user was flushed
        for name, rel in self.relationships.items():
            if rel.r_type != "belongs-to" or rel.foreign_key != col_name:
                continue
            related = entity.__dict__.get(name)
            if related is not None and hasattr(related, "_mapper"):
                return related.__dict__.get(related._mapper.pk)
        return None

    def prepare_insert(self, entity):
        data = self._get_operation_columns(entity)
        pk_val = entity.__dict__.get(self.pk)
        if pk_val is not None:
            data[self.pk] = pk_val
        return {self.table_name: data}

    def prepare_update(self, entity, old_state):
        current = self._get_operation_columns(entity)
        old_state = old_state or {}
        changed = {col: val for col, val in current.items() if old_state.get(col) != val}
        if not changed:
            return {}
        changed["_pk"] = entity.__dict__.get(self.pk)
        return {self.table_name: changed}

    def prepare_delete(self, entity):
        return {self.table_name: entity.__dict__.get(self.pk)}

    def column_values(self, entity):
        return {col: entity.__dict__.get(col) for col in self.columns}

    def hydrate(self, row_dict):
        obj = self.cls()
        for key in self.columns:
            if key in row_dict:
                obj.__dict__[key] = row_dict[key]
        return obj
