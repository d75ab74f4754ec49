import re

class QueryBuilder:
    def __init__(self):
        self._safe_ident_pattern = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

    def _quote(self, identifier):
        if not identifier or not self._safe_ident_pattern.match(str(identifier)):
            raise ValueError(f"Unsafe SQL identifier: {identifier}")
        return f'"{identifier}"'

    def _build_where(self, filters):
        """WHERE clause for equality filters. None matches NULL, lists and tuples become IN (...)."""
        if not filters:
            return "", []
        where_parts = []
        params = []
        for col, val in filters.items():
            quoted_col = self._quote(col)
            if val is None:
                where_parts.append(f"{quoted_col} IS NULL")
            elif isinstance(val, (list, tuple, set)):
                values = list(val)
                if not values:
                    where_parts.append("0 = 1")
                    continue
                placeholders = ", ".join("?" for _ in values)
                where_parts.append(f"{quoted_col} IN ({placeholders})")
                params.extend(values)
            else:
                where_parts.append(f"{quoted_col} = ?")
                params.append(val)
        return " WHERE " + " AND ".join(where_parts), params

    def build_insert(self, table_name, data):
        """Build INSERT SQL from table name and data dict. Does not use mapper."""
        table = self._quote(table_name)
        fields = list(data.keys())
        if not fields:
            return f"INSERT INTO {table} DEFAULT VALUES", ()
        quoted_fields = [self._quote(f) for f in fields]
        placeholders = ", ".join(["?" for _ in fields])
        values = [data[f] for f in fields]
        sql = f"INSERT INTO {table} ({', '.join(quoted_fields)}) VALUES ({placeholders})"
        return sql, tuple(values)

    def build_select(self, mapper, filters, limit=None, offset=None, order_by=None):
        table = self._quote(mapper.table_name)
        cols = [self._quote(c) for c in mapper.columns.keys()]
        sql = f"SELECT {', '.join(cols)} FROM {table}"

        where, params = self._build_where(filters)
        sql += where

        if order_by:
            order_clauses = []
            for col, direction in order_by:
                direction = direction.upper()
                if direction not in ("ASC", "DESC"):
                    raise ValueError(f"Invalid sort direction: {direction}")
                order_clauses.append(f"{self._quote(col)} {direction}")
            sql += " ORDER BY " + ", ".join(order_clauses)

        if limit is not None:
            sql += f" LIMIT {int(limit)}"
            if offset is not None: sql += f" OFFSET {int(offset)}"
        elif offset is not None:
            sql += f" LIMIT -1 OFFSET {int(offset)}"

        return sql, tuple(params)

    def build_count(self, table_name, filters):
        where, params = self._build_where(filters)
        return f"SELECT COUNT(*) FROM {self._quote(table_name)}{where}", tuple(params)

    def build_delete(self, table_name, pk_value, pk_column="id"):
        """Build DELETE SQL from table name and pk. Does not use mapper."""
        table = self._quote(table_name)
        pk_col = self._quote(pk_column)
        sql = f"DELETE FROM {table} WHERE {pk_col} = ?"
        return sql, (pk_value,)

    def build_update(self, table_name, data, pk_column="id"):
        """Build UPDATE SQL from table name and data dict. data must contain _pk for WHERE. Does not use mapper."""
        table = self._quote(table_name)
        data = dict(data)
        pk_val = data.pop("_pk", None)
        if pk_val is None:
            raise ValueError("update data must contain _pk for WHERE clause")
        set_parts = []
        params = []
        for col, val in data.items():
            set_parts.append(f"{self._quote(col)} = ?")
            params.append(val)
        params.append(pk_val)
        sql = f"UPDATE {table} SET {', '.join(set_parts)} WHERE {self._quote(pk_column)} = ?"
        return sql, tuple(params)

    def build_update_where(self, table_name, values, filters):
        """Build a bulk UPDATE touching every row that matches the equality filters."""
        if not values:
            raise ValueError("bulk update needs at least one column to set")
        table = self._quote(table_name)
        set_parts = []
        params = []
        for col, val in values.items():
            set_parts.append(f"{self._quote(col)} = ?")
            params.append(val)
        where, where_params = self._build_where(filters)
        sql = f"UPDATE {table} SET {', '.join(set_parts)}{where}"
        return sql, tuple(params + where_params)
