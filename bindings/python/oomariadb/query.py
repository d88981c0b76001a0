"""Text-protocol queries with transient-error retry, and scalar helpers."""

import enum
import logging
import re

from .errors import DataError, LogicError, ProgrammingError, raise_error
from .native import ER_LOCK_DEADLOCK, ER_LOCK_WAIT_TIMEOUT, MYSQL_COUNT_ERROR

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = frozenset({ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK})

_UINT_RE = re.compile(r"\s*\+?(?:0[xX](?P<hex>[0-9a-fA-F]+)|0(?P<oct>[0-7]*)|(?P<dec>[1-9][0-9]*))")


class ResultKind(enum.Enum):
    USE = "use"      # mysql_use_result(): stream rows, server holds the cursor
    STORE = "store"  # mysql_store_result(): buffer the whole result client-side


class Result:
    """A text-protocol result set. Rows are tuples of ``bytes`` or ``None``.

    With :attr:`ResultKind.USE` no other query may run on the connection until
    the result is freed.
    """

    def __init__(self, driver, res):
        self._driver = driver
        self._res = res

    @property
    def num_fields(self):
        if self._res is None:
            return 0
        return self._driver.num_fields(self._res)

    def fetch_row(self):
        if self._res is None:
            return None
        return self._driver.fetch_row(self._res)

    def free(self):
        if self._res is not None:
            self._driver.free_result(self._res)
            self._res = None

    close = free

    def __iter__(self):
        while True:
            row = self.fetch_row()
            if row is None:
                return
            yield row

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.free()


def flush_results(driver, mysql):
    """Discard result sets still pending from a multi-statement query."""
    while not driver.next_result(mysql):
        driver.free_result(driver.use_result(mysql))


def submit(driver, mysql, sql, *, max_retries=None):
    """Run ``sql`` on a raw handle, resubmitting on lock-wait timeout or deadlock."""
    flush_results(driver, mysql)
    attempts = 0
    while driver.query(mysql, sql):
        code = driver.errno(mysql)
        if code in RETRYABLE_ERRORS and (max_retries is None or attempts < max_retries):
            attempts += 1
            logger.debug("Error %d on attempt %d of \"%s\", retrying", code, attempts, sql)
            continue
        raise_error(driver, mysql, f"Query \"{sql}\"", sql=sql)


def query(conn, sql, *, max_retries=None):
    """Run a statement whose result, if any, is not wanted."""
    if max_retries is None:
        max_retries = conn.max_retries
    driver = conn.driver
    mysql = conn.acquire()
    submit(driver, mysql, sql, max_retries=max_retries)
    # An unread result set would put the handle out of sync for the next command
    driver.free_result(driver.store_result(mysql))


def query_result(conn, sql, kind=ResultKind.STORE):
    if not isinstance(kind, ResultKind):
        raise LogicError(f"Unknown result kind {kind!r}")
    driver = conn.driver
    mysql = conn.acquire()
    submit(driver, mysql, sql, max_retries=conn.max_retries)
    if kind is ResultKind.USE:
        res = driver.use_result(mysql)
    else:
        res = driver.store_result(mysql)
    if not res:
        if driver.errno(mysql):
            raise_error(driver, mysql, "Fail to store result", sql=sql)
        raise ProgrammingError(f"No result of '{sql}'", sql=sql)
    return Result(driver, res)


def affect(conn, sql):
    """Run ``sql`` and insist it changed at least one row; returns the count."""
    driver = conn.driver
    mysql = conn.acquire()
    submit(driver, mysql, sql, max_retries=conn.max_retries)
    n = driver.affected_rows(mysql)
    if n == MYSQL_COUNT_ERROR:
        raise_error(driver, mysql, f"Affected \"{sql}\"", sql=sql)
    if n == 0:
        raise DataError(f"Zero affected row by \"{sql}\"", sql=sql)
    return n


def _decode(value):
    return None if value is None else value.decode("utf-8", errors="replace")


def query_column(conn, sql, next_row, col=0):
    """Stream column ``col`` of every row into ``next_row(value)``.

    Stops early once ``next_row`` returns a false value.
    """
    with query_result(conn, sql, ResultKind.USE) as res:
        for row in res:
            if not next_row(_decode(row[col])):
                break


def query_string(conn, sql, col=0):
    """First non-NULL value of column ``col``, or ``""`` when there is none."""
    ret = []

    def take(s):
        if s is not None:
            ret.append(s)
            return False
        return True

    query_column(conn, sql, take, col)
    return ret[0] if ret else ""


def parse_ulong(s):
    """Read an unsigned integer the way C's strtoul(s, &end, 0) does.

    Leading whitespace, an optional '+', then hex (``0x``), octal (leading ``0``)
    or decimal. An empty string is 0; any other unconsumed text raises DataError.
    """
    if not s:
        return 0
    m = _UINT_RE.fullmatch(s)
    if m is None:
        raise DataError(f"Not unsigned integer: '{s}'")
    if m.group("hex") is not None:
        return int(m.group("hex"), 16)
    if m.group("oct") is not None:
        return int(m.group("oct") or "0", 8)
    return int(m.group("dec"))


def query_ulong(conn, sql, col=0):
    """First non-NULL value of column ``col`` as an unsigned integer, 0 when there is none.

    A value that is not an unsigned integer raises DataError.
    """
    ret = []

    def take(s):
        if s is not None:
            ret.append(parse_ulong(s))
            return False
        return True

    query_column(conn, sql, take, col)
    return ret[0] if ret else 0
