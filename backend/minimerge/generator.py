from minimerge.mapper import Mapper
from minimerge.orm_types import ForeignKey


class SchemaGenerator:
    TYPE_MAP = {str: "TEXT", int: "INTEGER", bool: "INTEGER"}

    def generate_create_table(self, mapper):
        table_name = mapper.table_name
        column_defs = []
        fk_defs = []

        for name, col in mapper.columns.items():
            sql_type = self.TYPE_MAP.get(col.dtype, "TEXT")

            constraints = []
            if name == mapper.pk:
                constraints.append("PRIMARY KEY AUTOINCREMENT")
            elif not col.nullable:
                constraints.append("NOT NULL")
            if col.unique and name != mapper.pk:
                constraints.append("UNIQUE")

            column_defs.append(f'"{name}" {sql_type} {" ".join(constraints)}'.strip())

            # polymorphic keys have no single target table
            if isinstance(col, ForeignKey) and col.target_table:
                fk_defs.append(
                    f'FOREIGN KEY("{name}") REFERENCES "{col.target_table}"("{col.target_column}")'
                )

        return f'CREATE TABLE IF NOT EXISTS "{table_name}" ({", ".join(column_defs + fk_defs)});'

    def generate_drop_table(self, mapper):
        return f'DROP TABLE IF EXISTS "{mapper.table_name}";'

    def create_all(self, engine, registry, drop_first=False):
        Mapper.finalize_mappers()
        mappers = list(registry.values())
        if drop_first:
            engine.execute("PRAGMA foreign_keys = OFF")
            for mapper in mappers:
                engine.execute(self.generate_drop_table(mapper))
            if engine.foreign_keys:
                engine.execute("PRAGMA foreign_keys = ON")
        for mapper in mappers:
            engine.execute(self.generate_create_table(mapper))
