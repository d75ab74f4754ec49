from abc import ABC, abstractmethod

class Transaction(ABC):
    """One queued unit-of-work entry for a single entity."""

    def __init__(self, session, entity):
        self.session = session
        self.entity = entity

    @abstractmethod
    def prepare(self):
        """Return a list of {"table_name", "data"} operations to run for the entity."""
        pass

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.entity!r}>"


class InsertTransaction(Transaction):
    def prepare(self):
        mapper = self.entity._mapper
        operations = mapper.prepare_insert(self.entity)
        return [{"table_name": table_name, "data": data} for table_name, data in operations.items()]


class UpdateTransaction(Transaction):
    def prepare(self):
        mapper = self.entity._mapper
        old_state = self.session._snapshots.get(id(self.entity))
        operations = mapper.prepare_update(self.entity, old_state)
        return [{"table_name": table_name, "data": data} for table_name, data in operations.items()]


class DeleteTransaction(Transaction):
    def prepare(self):
        mapper = self.entity._mapper
        operations = mapper.prepare_delete(self.entity)
        return [{"table_name": table_name, "data": pk_val} for table_name, pk_val in operations.items()]
