import logging
from collections import deque
from contextlib import contextmanager

from minimerge.states import ObjectState
from minimerge.identity_map import IdentityMap
from minimerge.query import Query
from minimerge.transactions import InsertTransaction, UpdateTransaction, DeleteTransaction
from minimerge.mapper import Mapper
from minimerge.builder import QueryBuilder

class Session:
    logger = logging.getLogger("MiniMerge.session")

    def __init__(self, engine):
        Mapper.finalize_mappers()

        self.engine = engine
        self.query_builder = QueryBuilder()
        self.identity_map = IdentityMap()
        self.unit_of_work = deque()
        self._snapshots = {}
        self._inserted = []
        self._scopes = []
        self._in_flush = False
        self._is_loading = False
        self._transaction_active = False
        self._committed_state = self._capture()

    def query(self, model_class):
        return Query(model_class, self)

    def get(self, model_class, pk):
        existing = self.identity_map.get(model_class, pk)
        if existing is not None:
            return None if existing._orm_state == ObjectState.DELETED else existing
        return self.query(model_class).filter(**{model_class._mapper.pk: pk}).first()

    def add(self, entity):
        state = entity._orm_state

        if any(t.entity is entity and isinstance(t, InsertTransaction) for t in self.unit_of_work):
            return

        if state == ObjectState.DETACHED:
            object.__setattr__(entity, '_session', self)
            object.__setattr__(entity, '_orm_state', ObjectState.PERSISTENT)
            pk_val = entity.__dict__.get(entity._mapper.pk)
            if pk_val is not None:
                self.identity_map.add(entity.__class__, pk_val, entity)
                self._take_snapshot(entity)
            return

        if state == ObjectState.TRANSIENT:
            object.__setattr__(entity, '_session', self)
            object.__setattr__(entity, '_orm_state', ObjectState.PENDING)
            self.unit_of_work.append(InsertTransaction(self, entity))
            self._cascade_add(entity)

    def delete(self, entity):
        state = entity._orm_state
        if state == ObjectState.PENDING:
            for t in list(self.unit_of_work):
                if t.entity is entity and isinstance(t, InsertTransaction):
                    self.unit_of_work.remove(t)
            object.__setattr__(entity, '_orm_state', ObjectState.TRANSIENT)
            object.__setattr__(entity, '_session', None)
            self.logger.debug(f"Cancelled adding object {entity}. Removed from queue.")
            return

        if state != ObjectState.PERSISTENT:
            raise ValueError(f"Cannot delete {entity} in state {state.name}")

        already_queued = {id(t.entity) for t in self.unit_of_work if isinstance(t, DeleteTransaction)}
        for e in self._collect_cascade_dependents(entity):
            if id(e) in already_queued:
                continue
            object.__setattr__(e, '_orm_state', ObjectState.DELETED)
            self.unit_of_work.append(DeleteTransaction(self, e))
            already_queued.add(id(e))

    def is_destroyed(self, entity):
        """True once the entity's row was actually removed by a flush."""
        if entity._orm_state != ObjectState.DELETED:
            return False
        return not any(t.entity is entity for t in self.unit_of_work)

    def flush(self):
        if self._in_flush:
            return

        self._in_flush = True
        try:
            for obj in self._get_dirty_objects():
                is_queued = any(t.entity is obj and isinstance(t, UpdateTransaction) for t in self.unit_of_work)
                if not is_queued:
                    self.unit_of_work.append(UpdateTransaction(self, obj))

            if not self.unit_of_work:
                return

            self._ensure_transaction()
            self.unit_of_work = self._sort_unit_of_work()
            while self.unit_of_work:
                transaction = self.unit_of_work[0]
                self._execute(transaction)
                self.unit_of_work.popleft()

        except Exception as e:
            self.logger.debug(f"Flush failed: {e}")
            if not self._scopes:
                self.rollback()
            raise RuntimeError(f"Error during flush: {e}") from e
        finally:
            self._in_flush = False

    def _ensure_transaction(self):
        if not self._transaction_active:
            self.engine.begin()
            self._transaction_active = True

    def _execute(self, transaction):
        entity = transaction.entity
        mapper = entity._mapper

        for op in transaction.prepare():
            table_name, data = op["table_name"], op["data"]

            if isinstance(transaction, InsertTransaction):
                sql, params = self.query_builder.build_insert(table_name, data)
                new_id = self.engine.execute_insert(sql, params)
                entity.__dict__.update(data)
                if entity.__dict__.get(mapper.pk) is None:
                    entity.__dict__[mapper.pk] = new_id
                self._inserted.append(entity)
                self._make_persistent(entity)

            elif isinstance(transaction, UpdateTransaction):
                sql, params = self.query_builder.build_update(table_name, data, pk_column=mapper.pk)
                self.engine.execute_write(sql, params)
                self._take_snapshot(entity)

            elif isinstance(transaction, DeleteTransaction):
                sql, params = self.query_builder.build_delete(table_name, data, pk_column=mapper.pk)
                deleted = self.engine.execute_write(sql, params)
                self.identity_map.remove(entity.__class__, data)
                self._snapshots.pop(id(entity), None)
                if not deleted:
                    object.__setattr__(entity, '_orm_state', ObjectState.DETACHED)
                    object.__setattr__(entity, '_session', None)

    @contextmanager
    def begin(self):
        """Transactional scope. Nested scopes (or a scope opened while a flush
        already started a transaction) run inside a SAVEPOINT."""
        saved = self._capture()
        if self._transaction_active:
            name = f"minimerge_sp_{len(self._scopes) + 1}"
            self.engine.savepoint(name)
        else:
            name = None
            self.engine.begin()
            self._transaction_active = True
        self._scopes.append(name)
        self.logger.debug(f"Opened transaction scope {name or 'root'}")

        try:
            yield self
            self.flush()
        except Exception:
            self._scopes.pop()
            if name is None:
                self.engine.rollback()
                self._transaction_active = False
            else:
                self.engine.rollback_to(name)
                self.engine.release(name)
            self._restore(saved)
            self.logger.debug(f"Rolled back transaction scope {name or 'root'}")
            raise

        self._scopes.pop()
        if name is None:
            self.engine.commit()
            self._transaction_active = False
            self._inserted = []
            self._committed_state = self._capture()
        else:
            self.engine.release(name)
        self.logger.debug(f"Closed transaction scope {name or 'root'}")

    def commit(self):
        if self._scopes:
            raise RuntimeError("commit() cannot be called inside a begin() block")
        self.flush()
        if self._transaction_active:
            self.engine.commit()
            self._transaction_active = False
        self._inserted = []
        self._committed_state = self._capture()

    def rollback(self):
        if self._scopes:
            raise RuntimeError("rollback() cannot be called inside a begin() block")
        if self._transaction_active:
            self.engine.rollback()
            self._transaction_active = False
        self._restore(self._committed_state)
        self.logger.debug("Rollback completed. Objects reset to safe state.")

    def _capture(self):
        tracked = {}
        for obj in self.identity_map.values():
            tracked[id(obj)] = obj
        for t in self.unit_of_work:
            tracked[id(t.entity)] = t.entity

        entities = []
        for obj in tracked.values():
            snapshot = self._snapshots.get(id(obj))
            entities.append((obj, dict(obj.__dict__), dict(snapshot) if snapshot is not None else None))
        return {
            "entities": entities,
            "unit_of_work": list(self.unit_of_work),
            "inserted": len(self._inserted),
        }

    def _restore(self, saved):
        saved_ids = {id(obj) for obj, _, _ in saved["entities"]}

        for entity in self._inserted[saved["inserted"]:]:
            if id(entity) in saved_ids:
                continue
            entity.__dict__[entity._mapper.pk] = None
            object.__setattr__(entity, '_orm_state', ObjectState.TRANSIENT)
            object.__setattr__(entity, '_session', None)
        del self._inserted[saved["inserted"]:]

        for t in self.unit_of_work:
            if id(t.entity) not in saved_ids and t.entity._orm_state == ObjectState.PENDING:
                object.__setattr__(t.entity, '_orm_state', ObjectState.TRANSIENT)
                object.__setattr__(t.entity, '_session', None)

        # loaded inside the rolled back scope, values may not match the store anymore
        for obj in self.identity_map.values():
            if id(obj) not in saved_ids and obj._orm_state == ObjectState.PERSISTENT:
                object.__setattr__(obj, '_orm_state', ObjectState.DETACHED)
                object.__setattr__(obj, '_session', None)

        self.identity_map.clear()
        self._snapshots.clear()
        for obj, values, snapshot in saved["entities"]:
            obj.__dict__.clear()
            obj.__dict__.update(values)
            if snapshot is not None:
                self._snapshots[id(obj)] = snapshot
            pk_val = values.get(obj._mapper.pk)
            if pk_val is not None and obj._orm_state in (ObjectState.PERSISTENT, ObjectState.DELETED):
                self.identity_map.add(obj.__class__, pk_val, obj)

        self.unit_of_work = deque(saved["unit_of_work"])

    def _take_snapshot(self, instance):
        self._snapshots[id(instance)] = instance._mapper.column_values(instance)

    def _make_persistent(self, obj):
        pk_val = obj.__dict__.get(obj._mapper.pk)
        if pk_val is None:
            return obj

        existing = self.identity_map.get(obj.__class__, pk_val)
        if existing is not None and existing is not obj:
            return existing

        object.__setattr__(obj, '_orm_state', ObjectState.PERSISTENT)
        object.__setattr__(obj, '_session', self)
        self.identity_map.add(obj.__class__, pk_val, obj)
        self._take_snapshot(obj)
        return obj

    def _synchronize(self, model_class, filters, values):
        """Apply a bulk UPDATE to the loaded instances it matched."""
        for obj in self.identity_map.of_class(model_class):
            if obj._orm_state != ObjectState.PERSISTENT:
                continue
            if not self._matches(obj, filters):
                continue
            snapshot = self._snapshots.get(id(obj))
            for col, val in values.items():
                obj.__dict__[col] = val
                if snapshot is not None:
                    snapshot[col] = val

    @staticmethod
    def _matches(obj, filters):
        for col, val in filters.items():
            current = obj.__dict__.get(col)
            if isinstance(val, (list, tuple, set)):
                if current not in val:
                    return False
            elif current != val:
                return False
        return True

    def _sort_unit_of_work(self):
        inserts = [t for t in self.unit_of_work if isinstance(t, InsertTransaction)]
        others = [t for t in self.unit_of_work if not isinstance(t, InsertTransaction)]

        sorted_inserts = []
        visited = set()

        def visit(trans):
            if trans in visited: return
            visited.add(trans)

            mapper = trans.entity._mapper
            for rel_name, rel in mapper.relationships.items():
                if rel.r_type == "belongs-to":
                    related_obj = trans.entity.__dict__.get(rel_name)
                    if related_obj is not None:
                        dep = next((t for t in inserts if t.entity is related_obj), None)
                        if dep: visit(dep)
            sorted_inserts.append(trans)

        for t in inserts:
            visit(t)

        return deque(sorted_inserts + others)

    def _collect_cascade_dependents(self, entity, _visited=None):
        """Return list of entities to delete in order: dependents first (cascade_delete), then entity. No duplicates."""
        if _visited is None:
            _visited = set()
        if id(entity) in _visited:
            return []
        _visited.add(id(entity))

        out = []
        for rel in entity._mapper.relationships.values():
            if not rel.cascade_delete or rel.r_type == "belongs-to" or rel.through:
                continue
            related = getattr(entity, rel.name)
            if related is None:
                continue
            for ref in related if isinstance(related, list) else [related]:
                out.extend(self._collect_cascade_dependents(ref, _visited))
        out.append(entity)
        return out

    def _get_dirty_objects(self):
        dirty = []
        for obj in self.identity_map.values():
            if obj._orm_state != ObjectState.PERSISTENT:
                continue
            old_state = self._snapshots.get(id(obj))
            if old_state is None:
                continue
            if obj._mapper.column_values(obj) != old_state:
                dirty.append(obj)
        return dirty

    def _cascade_add(self, instance):
        mapper = instance._mapper
        for rel_name, rel in mapper.relationships.items():
            if rel.r_type != "belongs-to":
                continue
            item = instance.__dict__.get(rel_name)
            if item is not None and hasattr(item, '_mapper') and item._orm_state == ObjectState.TRANSIENT:
                self.add(item)

    def _autoflush(self):
        if self._is_loading or self._in_flush:
            return
        if self.unit_of_work or self._get_dirty_objects():
            self.flush()

    def refresh(self, instance):
        mapper = instance._mapper
        pk_val = instance.__dict__.get(mapper.pk)
        if pk_val is None:
            return

        sql, params = self.query_builder.build_select(mapper, {mapper.pk: pk_val}, limit=1)
        rows = self.engine.execute(sql, params)
        if not rows:
            raise ValueError(f"{instance} no longer exists")
        row = dict(rows[0])
        for col in mapper.columns:
            instance.__dict__[col] = row.get(col)
        object.__setattr__(instance, '_orm_state', ObjectState.PERSISTENT)
        self._take_snapshot(instance)

    def close(self):
        all_tracked_objects = self.identity_map.values()

        if self._transaction_active:
            self.engine.rollback()
            self._transaction_active = False

        for obj in all_tracked_objects:
            object.__setattr__(obj, '_session', None)
            object.__setattr__(obj, '_orm_state', ObjectState.DETACHED)

        self.identity_map.clear()
        self._snapshots.clear()
        self.unit_of_work.clear()
        self._inserted = []
        self._committed_state = self._capture()
        self.logger.debug(f"Detached {len(all_tracked_objects)} objects.")

    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type and not self._scopes:
            self.rollback()
        self.close()
