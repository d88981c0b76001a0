import ctypes
import ctypes.util
import os
from ctypes import (
    c_int, c_uint, c_ulong, c_ulonglong, c_ubyte, c_char_p, c_void_p, POINTER, Structure
)

# Server error codes the retry loops care about.
ER_LOCK_WAIT_TIMEOUT = 1205  # "Lock wait timeout exceeded; try restarting transaction"
ER_LOCK_DEADLOCK = 1213      # "Deadlock found when trying to get lock; try restarting transaction"

# mysql_stmt_fetch() return codes
MYSQL_NO_DATA = 100
MYSQL_DATA_TRUNCATED = 101

# (my_ulonglong)-1 as returned by mysql_affected_rows() on error
MYSQL_COUNT_ERROR = (1 << 64) - 1

# Client capability flags for mysql_real_connect()
CLIENT_COMPRESS = 32
CLIENT_MULTI_STATEMENTS = 1 << 16

# enum mysql_option
MYSQL_SET_CHARSET_NAME = 7
MYSQL_OPT_RECONNECT = 20

# enum enum_field_types
MYSQL_TYPE_DECIMAL = 0
MYSQL_TYPE_TINY = 1
MYSQL_TYPE_SHORT = 2
MYSQL_TYPE_LONG = 3
MYSQL_TYPE_FLOAT = 4
MYSQL_TYPE_DOUBLE = 5
MYSQL_TYPE_NULL = 6
MYSQL_TYPE_TIMESTAMP = 7
MYSQL_TYPE_LONGLONG = 8
MYSQL_TYPE_INT24 = 9
MYSQL_TYPE_DATE = 10
MYSQL_TYPE_TIME = 11
MYSQL_TYPE_DATETIME = 12
MYSQL_TYPE_YEAR = 13
MYSQL_TYPE_VARCHAR = 15
MYSQL_TYPE_BIT = 16
MYSQL_TYPE_NEWDECIMAL = 246
MYSQL_TYPE_TINY_BLOB = 249
MYSQL_TYPE_MEDIUM_BLOB = 250
MYSQL_TYPE_LONG_BLOB = 251
MYSQL_TYPE_BLOB = 252
MYSQL_TYPE_VAR_STRING = 253
MYSQL_TYPE_STRING = 254

my_bool = c_ubyte


class MysqlBind(Structure):
    # Layout of MYSQL_BIND shared by Connector/C 3.x and libmysqlclient 8.x
    _fields_ = [
        ("length", POINTER(c_ulong)),
        ("is_null", POINTER(my_bool)),
        ("buffer", c_void_p),
        ("error", POINTER(my_bool)),
        ("row_ptr", c_void_p),
        ("store_param_func", c_void_p),
        ("fetch_result", c_void_p),
        ("skip_result", c_void_p),
        ("buffer_length", c_ulong),
        ("offset", c_ulong),
        ("length_value", c_ulong),
        ("flags", c_uint),
        ("pack_length", c_uint),
        ("buffer_type", c_int),
        ("error_value", my_bool),
        ("is_unsigned", my_bool),
        ("long_data_used", my_bool),
        ("is_null_value", my_bool),
        ("extension", c_void_p),
    ]

_lib = None

_LIB_NAMES = ("mariadb", "mysqlclient", "mariadbclient")


def load_library():
    global _lib
    if _lib is not None:
        return _lib

    lib_path = os.environ.get("OOMARIADB_NATIVE_LIB")
    if not lib_path:
        for name in _LIB_NAMES:
            lib_path = ctypes.util.find_library(name)
            if lib_path:
                break

    if not lib_path:
        raise RuntimeError("Could not find the MariaDB/MySQL client library. Set OOMARIADB_NATIVE_LIB env var.")

    try:
        lib = ctypes.CDLL(lib_path)
    except OSError as e:
        raise RuntimeError(f"Failed to load client library at {lib_path}: {e}")

    # Define signatures

    # Connection
    lib.mysql_init.argtypes = [c_void_p]
    lib.mysql_init.restype = c_void_p

    lib.mysql_options.argtypes = [c_void_p, c_int, c_void_p]
    lib.mysql_options.restype = c_int

    lib.mysql_real_connect.argtypes = [
        c_void_p, c_char_p, c_char_p, c_char_p, c_char_p, c_uint, c_char_p, c_ulong
    ]
    lib.mysql_real_connect.restype = c_void_p

    lib.mysql_close.argtypes = [c_void_p]
    lib.mysql_close.restype = None

    lib.mysql_ping.argtypes = [c_void_p]
    lib.mysql_ping.restype = c_int

    lib.mysql_thread_id.argtypes = [c_void_p]
    lib.mysql_thread_id.restype = c_ulong

    lib.mysql_select_db.argtypes = [c_void_p, c_char_p]
    lib.mysql_select_db.restype = c_int

    # Text protocol
    lib.mysql_real_query.argtypes = [c_void_p, c_char_p, c_ulong]
    lib.mysql_real_query.restype = c_int

    lib.mysql_next_result.argtypes = [c_void_p]
    lib.mysql_next_result.restype = c_int

    lib.mysql_use_result.argtypes = [c_void_p]
    lib.mysql_use_result.restype = c_void_p

    lib.mysql_store_result.argtypes = [c_void_p]
    lib.mysql_store_result.restype = c_void_p

    # MYSQL_ROW is char**; c_void_p elements keep NULL columns distinguishable
    lib.mysql_fetch_row.argtypes = [c_void_p]
    lib.mysql_fetch_row.restype = POINTER(c_void_p)

    lib.mysql_fetch_lengths.argtypes = [c_void_p]
    lib.mysql_fetch_lengths.restype = POINTER(c_ulong)

    lib.mysql_num_fields.argtypes = [c_void_p]
    lib.mysql_num_fields.restype = c_uint

    lib.mysql_free_result.argtypes = [c_void_p]
    lib.mysql_free_result.restype = None

    lib.mysql_affected_rows.argtypes = [c_void_p]
    lib.mysql_affected_rows.restype = c_ulonglong

    # Diagnostics
    lib.mysql_errno.argtypes = [c_void_p]
    lib.mysql_errno.restype = c_uint

    lib.mysql_sqlstate.argtypes = [c_void_p]
    lib.mysql_sqlstate.restype = c_char_p

    lib.mysql_error.argtypes = [c_void_p]
    lib.mysql_error.restype = c_char_p

    # Prepared statements
    lib.mysql_stmt_init.argtypes = [c_void_p]
    lib.mysql_stmt_init.restype = c_void_p

    lib.mysql_stmt_prepare.argtypes = [c_void_p, c_char_p, c_ulong]
    lib.mysql_stmt_prepare.restype = c_int

    lib.mysql_stmt_param_count.argtypes = [c_void_p]
    lib.mysql_stmt_param_count.restype = c_ulong

    lib.mysql_stmt_field_count.argtypes = [c_void_p]
    lib.mysql_stmt_field_count.restype = c_uint

    lib.mysql_stmt_bind_param.argtypes = [c_void_p, POINTER(MysqlBind)]
    lib.mysql_stmt_bind_param.restype = my_bool

    lib.mysql_stmt_bind_result.argtypes = [c_void_p, POINTER(MysqlBind)]
    lib.mysql_stmt_bind_result.restype = my_bool

    lib.mysql_stmt_send_long_data.argtypes = [c_void_p, c_uint, c_void_p, c_ulong]
    lib.mysql_stmt_send_long_data.restype = my_bool

    lib.mysql_stmt_execute.argtypes = [c_void_p]
    lib.mysql_stmt_execute.restype = c_int

    lib.mysql_stmt_fetch.argtypes = [c_void_p]
    lib.mysql_stmt_fetch.restype = c_int

    lib.mysql_stmt_fetch_column.argtypes = [c_void_p, POINTER(MysqlBind), c_uint, c_ulong]
    lib.mysql_stmt_fetch_column.restype = c_int

    lib.mysql_stmt_free_result.argtypes = [c_void_p]
    lib.mysql_stmt_free_result.restype = my_bool

    lib.mysql_stmt_affected_rows.argtypes = [c_void_p]
    lib.mysql_stmt_affected_rows.restype = c_ulonglong

    lib.mysql_stmt_close.argtypes = [c_void_p]
    lib.mysql_stmt_close.restype = my_bool

    lib.mysql_stmt_errno.argtypes = [c_void_p]
    lib.mysql_stmt_errno.restype = c_uint

    lib.mysql_stmt_sqlstate.argtypes = [c_void_p]
    lib.mysql_stmt_sqlstate.restype = c_char_p

    lib.mysql_stmt_error.argtypes = [c_void_p]
    lib.mysql_stmt_error.restype = c_char_p

    _lib = lib
    return _lib


def _encode(s):
    if s is None:
        return None
    if isinstance(s, bytes):
        return s
    return s.encode("utf-8")


def _decode(b):
    return b.decode("utf-8", errors="replace") if b else ""


class NativeDriver:
    """Thin Python face of the client library.

    Handles are opaque: whatever ``init()``/``stmt_init()``/``*_result()``
    return is passed back unchanged. Return conventions follow the C API
    (0 for success, non-zero for failure) except where noted.
    """

    def __init__(self, lib=None):
        self._lib = lib if lib is not None else load_library()

    # Connection

    def init(self):
        return self._lib.mysql_init(None)

    def options(self, mysql, option, value):
        if isinstance(value, bool):
            arg = ctypes.byref(my_bool(1 if value else 0))
        elif isinstance(value, int):
            arg = ctypes.byref(c_uint(value))
        else:
            arg = c_char_p(_encode(value))
        return self._lib.mysql_options(mysql, option, arg)

    def real_connect(self, mysql, host, user, passwd, db, port, unix_socket, client_flag):
        """Returns True on success."""
        return bool(self._lib.mysql_real_connect(
            mysql, _encode(host), _encode(user), _encode(passwd), _encode(db),
            port or 0, _encode(unix_socket), client_flag))

    def close(self, mysql):
        self._lib.mysql_close(mysql)

    def ping(self, mysql):
        return self._lib.mysql_ping(mysql)

    def thread_id(self, mysql):
        return self._lib.mysql_thread_id(mysql)

    def select_db(self, mysql, db):
        return self._lib.mysql_select_db(mysql, _encode(db))

    # Text protocol

    def query(self, mysql, sql):
        b = _encode(sql)
        return self._lib.mysql_real_query(mysql, b, len(b))

    def next_result(self, mysql):
        return self._lib.mysql_next_result(mysql)

    def use_result(self, mysql):
        return self._lib.mysql_use_result(mysql)

    def store_result(self, mysql):
        return self._lib.mysql_store_result(mysql)

    def num_fields(self, res):
        return self._lib.mysql_num_fields(res)

    def fetch_row(self, res):
        row = self._lib.mysql_fetch_row(res)
        if not row:
            return None
        n = self._lib.mysql_num_fields(res)
        lengths = self._lib.mysql_fetch_lengths(res)
        string_at = ctypes.string_at
        return tuple(None if row[i] is None else string_at(row[i], lengths[i]) for i in range(n))

    def free_result(self, res):
        if res:
            self._lib.mysql_free_result(res)

    def affected_rows(self, mysql):
        return self._lib.mysql_affected_rows(mysql)

    def errno(self, mysql):
        return self._lib.mysql_errno(mysql)

    def sqlstate(self, mysql):
        return _decode(self._lib.mysql_sqlstate(mysql))

    def error(self, mysql):
        return _decode(self._lib.mysql_error(mysql))

    # Prepared statements

    def stmt_init(self, mysql):
        return self._lib.mysql_stmt_init(mysql)

    def stmt_prepare(self, stmt, sql):
        b = _encode(sql)
        return self._lib.mysql_stmt_prepare(stmt, b, len(b))

    def stmt_param_count(self, stmt):
        return self._lib.mysql_stmt_param_count(stmt)

    def stmt_field_count(self, stmt):
        return self._lib.mysql_stmt_field_count(stmt)

    def stmt_bind_param(self, stmt, binds):
        return self._lib.mysql_stmt_bind_param(stmt, binds)

    def stmt_bind_result(self, stmt, binds):
        return self._lib.mysql_stmt_bind_result(stmt, binds)

    def stmt_send_long_data(self, stmt, index, address, length):
        return self._lib.mysql_stmt_send_long_data(stmt, index, address, length)

    def stmt_execute(self, stmt):
        return self._lib.mysql_stmt_execute(stmt)

    def stmt_fetch(self, stmt):
        return self._lib.mysql_stmt_fetch(stmt)

    def stmt_fetch_column(self, stmt, bind, column, offset):
        return self._lib.mysql_stmt_fetch_column(stmt, ctypes.byref(bind), column, offset)

    def stmt_free_result(self, stmt):
        return self._lib.mysql_stmt_free_result(stmt)

    def stmt_affected_rows(self, stmt):
        return self._lib.mysql_stmt_affected_rows(stmt)

    def stmt_close(self, stmt):
        return self._lib.mysql_stmt_close(stmt)

    def stmt_errno(self, stmt):
        return self._lib.mysql_stmt_errno(stmt)

    def stmt_sqlstate(self, stmt):
        return _decode(self._lib.mysql_stmt_sqlstate(stmt))

    def stmt_error(self, stmt):
        return _decode(self._lib.mysql_stmt_error(stmt))
