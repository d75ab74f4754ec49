import sqlite3
import logging

class DatabaseEngine:
    logger = logging.getLogger("MiniMerge")

    def __init__(self, db_path=":memory:", foreign_keys=True):
        self.db_path = db_path
        self.foreign_keys = foreign_keys
        # transactions are driven explicitly by the session (BEGIN/COMMIT/SAVEPOINT)
        self.connection = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        if foreign_keys:
            self.execute("PRAGMA foreign_keys = ON")

    def _log(self, sql, params=None):
        msg = f"[SQL EXECUTE]: {sql}"
        if params:
            msg += f" | [PARAMS]: {params}"
        self.logger.info(msg)

    def execute(self, sql, params=None):
        self._log(sql, params)
        cursor = self.connection.cursor()
        cursor.execute(sql, params or ())
        return cursor.fetchall()

    def execute_insert(self, sql, params=None):
        self._log(sql, params)
        cursor = self.connection.cursor()
        cursor.execute(sql, params or ())
        return cursor.lastrowid

    def execute_write(self, sql, params=None):
        """Run an UPDATE or DELETE and return the number of rows it touched."""
        self._log(sql, params)
        cursor = self.connection.cursor()
        cursor.execute(sql, params or ())
        return cursor.rowcount

    def begin(self):
        self.execute("BEGIN")

    def commit(self):
        self.execute("COMMIT")

    def rollback(self):
        self.execute("ROLLBACK")

    def savepoint(self, name):
        self.execute(f'SAVEPOINT "{name}"')

    def release(self, name):
        self.execute(f'RELEASE SAVEPOINT "{name}"')

    def rollback_to(self, name):
        self.execute(f'ROLLBACK TO SAVEPOINT "{name}"')

    @property
    def in_transaction(self):
        return self.connection.in_transaction

    def close(self):
        self.connection.close()
