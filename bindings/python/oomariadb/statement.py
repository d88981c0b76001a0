import ctypes
import logging

from .binding import BindBuffer, bind_int
from .errors import InterfaceError, OperationalError, ProgrammingError, raise_stmt_error, error_suffix
from .native import (
    MysqlBind, ER_LOCK_DEADLOCK, MYSQL_NO_DATA, MYSQL_COUNT_ERROR
)

logger = logging.getLogger(__name__)

# Assumed max_allowed_packet when the server gives no usable answer
DEFAULT_MAX_PACKET = 65536


class Statement:
    """One prepared statement handle plus its reusable bind buffer.

    A statement created by a :class:`~oomariadb.connection.Connection` is tied
    to the connection epoch it was created in; after a reconnect or a detected
    session change it refuses to run.
    """

    def __init__(self, driver, mysql, *, owner=None, max_retries=None):
        self._driver = driver
        self._mysql = mysql
        self._owner = owner
        self.epoch = owner.epoch if owner is not None else None
        self.max_retries = max_retries
        self._binds = BindBuffer()
        # Parameter buffers are read by every execute, long after bind_params returns
        self._param_buffers = []
        self._max_chunk_bytes = 0
        self._sql = None
        self._stmt = driver.stmt_init(mysql)
        if not self._stmt:
            raise OperationalError("Fail to init stmt" + error_suffix(driver, mysql))

    @property
    def handle(self):
        return self._stmt

    @property
    def bind_size(self):
        return self._binds.size

    @property
    def binds(self):
        return self._binds

    @property
    def closed(self):
        return self._stmt is None

    def _check_open(self):
        if self._stmt is None:
            raise InterfaceError("Statement is closed")
        if self._owner is not None and self._owner.epoch != self.epoch:
            raise InterfaceError(
                f"Statement belongs to connection epoch {self.epoch}, now {self._owner.epoch}")

    def close(self):
        if self._stmt is not None:
            self._driver.stmt_close(self._stmt)
            self._stmt = None
            self._param_buffers = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def prepare(self, sql):
        self._check_open()
        if self._driver.stmt_prepare(self._stmt, sql):
            raise_stmt_error(self._driver, self._stmt, f"Prepare \"{sql}\"", sql=sql, default=ProgrammingError)
        self._sql = sql

    def bind_params(self, binder):
        """Bind all parameters via ``binder(binds)`` and stream the oversized ones."""
        self._check_open()
        count = self._driver.stmt_param_count(self._stmt)
        limit = self.max_chunk_bytes() if count else 0
        self._binds.resize(count)
        binder(self._binds)
        self._param_buffers = self._binds.detach()

        long_params = [i for i, b in enumerate(self._binds) if b.buffer_length > limit]
        if self._driver.stmt_bind_param(self._stmt, self._binds.array):
            raise_stmt_error(self._driver, self._stmt, "Fail to bind params", sql=self._sql)

        for i in long_params:
            self._send_long_data(i, limit)

    def _send_long_data(self, index, limit):
        src = self._binds[index]
        total = src.buffer_length
        logger.debug("Streaming parameter %d of %d bytes in chunks of %d", index, total, limit)
        for off in range(0, total, limit):
            n = min(limit, total - off)
            if self._driver.stmt_send_long_data(self._stmt, index, src.buffer + off, n):
                raise_stmt_error(self._driver, self._stmt,
                                 f"Fail to send long data part of {n} bytes", sql=self._sql)

    def max_chunk_bytes(self):
        """Largest long-data chunk: half the server's max_allowed_packet.

        Discovered once per statement through a separate statement on the same
        connection, so this statement's own state is left untouched.
        """
        if not self._max_chunk_bytes:
            packet = ctypes.c_uint32()
            with Statement(self._driver, self._mysql, max_retries=self.max_retries) as probe:
                probe.prepare("select @@max_allowed_packet")
                barr = probe.execute_bind_results(lambda barr: bind_int(barr, 0, packet))
                if not probe.next_row() or barr[0].is_null_value or not packet.value or packet.value % 1024:
                    # Null or odd answer
                    packet.value = DEFAULT_MAX_PACKET
                probe.clear()
            self._max_chunk_bytes = packet.value // 2
            logger.debug("Long data chunk limit is %d bytes", self._max_chunk_bytes)
        return self._max_chunk_bytes

    def clear(self):
        """Discard any pending result set without fetching it."""
        if self._stmt is not None:
            self._driver.stmt_free_result(self._stmt)

    def execute(self):
        if self.execute_no_throw():
            raise_stmt_error(self._driver, self._stmt, "Fail to execute", sql=self._sql)

    def execute_no_throw(self):
        """Execute, resubmitting on deadlock; returns 0 or the failing error code."""
        self._check_open()
        attempts = 0
        while self._driver.stmt_execute(self._stmt):
            code = self._driver.stmt_errno(self._stmt)
            if code != ER_LOCK_DEADLOCK:
                return code
            attempts += 1
            if self.max_retries is not None and attempts > self.max_retries:
                return code
            logger.debug("Deadlock on attempt %d of \"%s\", retrying", attempts, self._sql)
        return 0

    def bind_results(self, binder):
        """Bind result columns via ``binder(binds)``; call after a successful execute."""
        self._check_open()
        self._binds.resize(self._driver.stmt_field_count(self._stmt))
        binder(self._binds)
        if self._driver.stmt_bind_result(self._stmt, self._binds.array):
            raise_stmt_error(self._driver, self._stmt, "Fail to bind result", sql=self._sql)
        return self._binds

    def execute_bind_results(self, binder):
        self.execute()
        return self.bind_results(binder)

    def next_row(self):
        self._check_open()
        err = self._driver.stmt_fetch(self._stmt)
        if err == 1:
            raise_stmt_error(self._driver, self._stmt, "Fail to fetch row", sql=self._sql)
        return err != MYSQL_NO_DATA

    def get_long_blob(self, i):
        """Fetch column ``i`` of the current row in full.

        The column must have been bound with bind_long_blob() so the fetch only
        reported its length. Returns None for NULL.
        """
        self._check_open()
        bind = self._binds[i]
        if bind.is_null_value:
            return None

        n = bind.length_value
        buf = ctypes.create_string_buffer(n)
        blob = MysqlBind()
        blob.buffer = ctypes.addressof(buf)
        blob.buffer_length = n
        blob.length = ctypes.pointer(ctypes.c_ulong())
        blob.buffer_type = bind.buffer_type
        if self._driver.stmt_fetch_column(self._stmt, blob, i, 0):
            raise_stmt_error(self._driver, self._stmt, "Fail to fetch blob data", sql=self._sql)
        return buf.raw[:n]

    def affected(self):
        self._check_open()
        n = self._driver.stmt_affected_rows(self._stmt)
        return 0 < n < MYSQL_COUNT_ERROR

    def query_uint(self):
        """Execute and read one unsigned 32-bit column; None for no row or NULL."""
        value = ctypes.c_uint32()
        barr = self.execute_bind_results(lambda barr: bind_int(barr, 0, value))
        if not self.next_row() or barr[0].is_null_value:
            return None
        return value.value
