import enum

from .query import query


class LockState(enum.Enum):
    UNLOCKED = 0
    LOCKED_BY_SPEC = 1
    LOCKED_ALL_READ = 2


class TableLock:
    """Table locks on a connection, released when the ``with`` block exits.

    ``add_*``/``remove*`` only edit the pending spec; nothing reaches the
    server until :meth:`lock` or :meth:`lock_all_read`.

        with TableLock(conn) as locks:
            locks.add_write("orders")
            locks.add_read("customers")
            locks.lock()
            ...
    """

    def __init__(self, conn):
        self._conn = conn
        self._spec = {}
        self._state = LockState.UNLOCKED

    @property
    def connection(self):
        return self._conn

    @property
    def state(self):
        return self._state

    @property
    def spec(self):
        return dict(self._spec)

    def add_read(self, table):
        self._spec[table] = "read"

    def add_write(self, table):
        self._spec[table] = "write"

    def remove(self, table):
        self._spec.pop(table, None)

    def remove_all(self):
        self._spec.clear()

    def lock(self):
        if not self._spec:
            return self.unlock()

        sql = "lock tables " + ", ".join(f"{table} {mode}" for table, mode in sorted(self._spec.items()))
        query(self._conn, sql)
        self._state = LockState.LOCKED_BY_SPEC

    def lock_all_read(self):
        if self._state is not LockState.LOCKED_ALL_READ:
            query(self._conn, "FLUSH TABLES WITH READ LOCK")
            self._state = LockState.LOCKED_ALL_READ

    def unlock(self):
        if self._state is not LockState.UNLOCKED:
            query(self._conn, "unlock tables")
            self._state = LockState.UNLOCKED

    close = unlock

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unlock()
