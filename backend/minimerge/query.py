from minimerge.states import ObjectState

class Query:
    def __init__(self, model_class, session):
        self.model_class = model_class
        self.mapper = model_class._mapper
        self.session = session
        self.filters = {}
        self._limit = None
        self._offset = None
        self._order_by = []

    def filter(self, **kwargs):
        for name in kwargs:
            if name not in self.mapper.columns:
                raise AttributeError(f"Model {self.model_class.__name__} has no column '{name}'")
        self.filters.update(kwargs)
        return self

    def order_by(self, column, direction="ASC"):
        self._order_by.append((column, direction))
        return self

    def limit(self, value: int):
        self._limit = value
        return self

    def offset(self, value: int):
        self._offset = value
        return self

    def all(self):
        self.session._autoflush()
        sql, params = self.session.query_builder.build_select(
            self.mapper, self.filters, limit=self._limit, offset=self._offset,
            order_by=self._order_by
        )
        rows = self.session.engine.execute(sql, params)
        results = []
        for row in rows:
            obj = self._hydrate(dict(row))
            if obj is not None:
                results.append(obj)
        return results

    def first(self):
        self.limit(1)
        results = self.all()
        return results[0] if results else None

    def count(self):
        self.session._autoflush()
        sql, params = self.session.query_builder.build_count(self.mapper.table_name, self.filters)
        return self.session.engine.execute(sql, params)[0][0]

    def exists(self):
        return self.count() > 0

    def update_all(self, **values):
        """Bulk UPDATE of every matching row. Returns the number of rows changed.

        Instances already loaded into the session are brought in line with the
        new values so later reads don't see the old foreign keys.
        """
        for name in values:
            if name not in self.mapper.columns:
                raise AttributeError(f"Model {self.model_class.__name__} has no column '{name}'")
        if self.mapper.pk in values:
            raise AttributeError(f"Cannot bulk update primary key of {self.model_class.__name__}")

        self.session._autoflush()
        self.session._ensure_transaction()
        sql, params = self.session.query_builder.build_update_where(
            self.mapper.table_name, values, self.filters
        )
        updated = self.session.engine.execute_write(sql, params)
        self.session._synchronize(self.model_class, self.filters, values)
        return updated

    def _hydrate(self, row_dict):
        pk_val = row_dict[self.mapper.pk]
        existing = self.session.identity_map.get(self.model_class, pk_val)
        if existing is not None:
            if existing._orm_state == ObjectState.DELETED:
                return None
            return existing

        obj = self.mapper.hydrate(row_dict)
        return self.session._make_persistent(obj)
