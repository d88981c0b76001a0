"""DB-API 2.0 exceptions and server diagnostic formatting."""


class Error(Exception):
    def __init__(self, msg="", errno=None, sqlstate=None, sql=None):
        super().__init__(msg)
        self.msg = msg
        self.errno = errno
        self.sqlstate = sqlstate
        self.sql = sql

class Warning(Exception):
    pass

class InterfaceError(Error):
    pass

class DatabaseError(Error):
    pass

class InternalError(DatabaseError):
    pass

class OperationalError(DatabaseError):
    pass

class ProgrammingError(DatabaseError):
    pass

class IntegrityError(DatabaseError):
    pass

class DataError(DatabaseError):
    pass

class NotSupportedError(DatabaseError):
    pass

class LogicError(Error):
    """Misuse of the binding or a broken internal invariant.

    Never raised for server-side failures; callers are not expected to catch it.
    """


_INTEGRITY_CODES = frozenset({
    1022,  # ER_DUP_KEY
    1048,  # ER_BAD_NULL_ERROR
    1062,  # ER_DUP_ENTRY
    1169,  # ER_DUP_UNIQUE
    1216,  # ER_NO_REFERENCED_ROW
    1217,  # ER_ROW_IS_REFERENCED
    1451,  # ER_ROW_IS_REFERENCED_2
    1452,  # ER_NO_REFERENCED_ROW_2
    1557,  # ER_FOREIGN_DUPLICATE_KEY
    4025,  # ER_CONSTRAINT_FAILED
})

_PROGRAMMING_CODES = frozenset({
    1044,  # ER_DBACCESS_DENIED_ERROR
    1049,  # ER_BAD_DB_ERROR
    1050,  # ER_TABLE_EXISTS_ERROR
    1051,  # ER_BAD_TABLE_ERROR
    1054,  # ER_BAD_FIELD_ERROR
    1064,  # ER_PARSE_ERROR
    1109,  # ER_UNKNOWN_TABLE
    1110,  # ER_FIELD_SPECIFIED_TWICE
    1142,  # ER_TABLEACCESS_DENIED_ERROR
    1146,  # ER_NO_SUCH_TABLE
    1149,  # ER_SYNTAX_ERROR
    1210,  # ER_WRONG_ARGUMENTS
    1243,  # ER_UNKNOWN_STMT_HANDLER
})

_DATA_CODES = frozenset({
    1264,  # ER_WARN_DATA_OUT_OF_RANGE
    1265,  # WARN_DATA_TRUNCATED
    1292,  # ER_TRUNCATED_WRONG_VALUE
    1366,  # ER_TRUNCATED_WRONG_VALUE_FOR_FIELD
    1406,  # ER_DATA_TOO_LONG
    1690,  # ER_DATA_OUT_OF_RANGE
})

_OPERATIONAL_CODES = frozenset({
    1040,  # ER_CON_COUNT_ERROR
    1045,  # ER_ACCESS_DENIED_ERROR
    1053,  # ER_SERVER_SHUTDOWN
    1152,  # ER_ABORTING_CONNECTION
    1153,  # ER_NET_PACKET_TOO_LARGE
    1205,  # ER_LOCK_WAIT_TIMEOUT
    1213,  # ER_LOCK_DEADLOCK
    1223,  # ER_CANT_UPDATE_WITH_READLOCK
})


def error_class(code):
    """Exception class for a server or client error code."""
    if code in _INTEGRITY_CODES:
        return IntegrityError
    if code in _PROGRAMMING_CODES:
        return ProgrammingError
    if code in _DATA_CODES:
        return DataError
    # 2000..2999 are client library errors (CR_*): lost connection, server gone, ...
    if code in _OPERATIONAL_CODES or 2000 <= code < 3000:
        return OperationalError
    return DatabaseError


def error_suffix(driver, mysql):
    code = driver.errno(mysql)
    if not code:
        return ""
    ret = f" with mysql error({code})[{driver.sqlstate(mysql)}]"
    msg = driver.error(mysql)
    if msg:
        ret += f" \"{msg}\""
    return ret


def stmt_error_suffix(driver, stmt):
    code = driver.stmt_errno(stmt)
    if not code:
        return ""
    return f" with mysql stmt error({code}): {driver.stmt_error(stmt)}"


def raise_error(driver, mysql, what, *, sql=None, default=OperationalError):
    """Raise for the last error recorded on a connection handle."""
    code = driver.errno(mysql)
    msg = what + error_suffix(driver, mysql)
    cls = error_class(code) if code else default
    raise cls(msg, errno=code or None, sqlstate=driver.sqlstate(mysql) if code else None, sql=sql)


def raise_stmt_error(driver, stmt, what, *, sql=None, default=OperationalError):
    """Raise for the last error recorded on a statement handle.

    Any pending result set on the statement is released first so the owning
    connection stays usable.
    """
    code = driver.stmt_errno(stmt)
    msg = what + stmt_error_suffix(driver, stmt)
    sqlstate = driver.stmt_sqlstate(stmt) if code else None
    driver.stmt_free_result(stmt)
    cls = error_class(code) if code else default
    raise cls(msg, errno=code or None, sqlstate=sqlstate, sql=sql)
