"""In-memory stand-in for the client library.

Implements the NativeDriver surface. Parameter and result binding go through
real MYSQL_BIND memory, so buffers, length and null indicators behave the way
the C library treats them.
"""

import ctypes
from collections import defaultdict

from oomariadb.native import (
    MysqlBind,
    MYSQL_NO_DATA, MYSQL_DATA_TRUNCATED,
    MYSQL_TYPE_TINY, MYSQL_TYPE_SHORT, MYSQL_TYPE_LONG, MYSQL_TYPE_LONGLONG, MYSQL_TYPE_NULL,
)

_INT_CTYPES = {
    MYSQL_TYPE_TINY: (ctypes.c_int8, ctypes.c_uint8),
    MYSQL_TYPE_SHORT: (ctypes.c_int16, ctypes.c_uint16),
    MYSQL_TYPE_LONG: (ctypes.c_int32, ctypes.c_uint32),
    MYSQL_TYPE_LONGLONG: (ctypes.c_int64, ctypes.c_uint64),
}

_SQLSTATES = {
    1062: "23000",
    1064: "42000",
    1146: "42S02",
    1205: "HY000",
    1213: "40001",
    2006: "HY000",
    1045: "28000",
    2014: "HY000",
}

CR_COMMANDS_OUT_OF_SYNC = 2014

_MESSAGES = {
    1062: "Duplicate entry",
    1064: "You have an error in your SQL syntax",
    1146: "Table doesn't exist",
    1205: "Lock wait timeout exceeded; try restarting transaction",
    1213: "Deadlock found when trying to get lock; try restarting transaction",
    2006: "MySQL server has gone away",
    1045: "Access denied",
    2014: "Commands out of sync; you can't run this command now",
}


class _Diag:
    def __init__(self):
        self.set(0)

    def set(self, code, msg=None):
        self.code = code
        self.msg = "" if not code else (msg or _MESSAGES.get(code, f"error {code}"))
        self.state = "00000" if not code else _SQLSTATES.get(code, "HY000")


class FakeResult:
    def __init__(self, columns, rows):
        self.columns = columns
        self.rows = list(rows)
        self.pos = 0
        self.freed = False


class FakeMysql(_Diag):
    def __init__(self):
        super().__init__()
        self.thread_id = 0
        self.options = {}
        self.connected = False
        self.closed = False
        self.connect_kwargs = None
        self.pending = None          # result of the last text query, not yet taken
        self.more_results = []       # further result sets of a multi-statement query
        self.affected = 0
        self.database = None


class FakeStmt(_Diag):
    def __init__(self, mysql):
        super().__init__()
        self.mysql = mysql
        self.sql = None
        self.param_count = 0
        self.field_count = 0
        self.params = []
        self.results = []
        self.long_data = defaultdict(list)
        self.rows = None
        self.pos = 0
        self.affected = 0
        self.closed = False
        self.executions = []


class FakeServer:
    """Scripted server behaviour shared by every handle of a FakeDriver."""

    def __init__(self):
        self.next_thread_id = 100
        self.max_allowed_packet = 1 << 20
        # sql -> (column count, rows) for text queries and prepared statements
        self.results = {}
        self.affected = {}
        # sql -> error codes consumed one per attempt
        self.query_errors = defaultdict(list)
        self.prepare_errors = {}
        self.execute_errors = []
        self.ping_failures = 0
        self.reconnect_on_ping = False
        self.connect_errors = []
        self.option_errors = set()
        self.fail_init = False
        self.unknown_databases = set()
        self.send_errors = 0
        # called as on_execute(sql, params) for prepared statements; may return rows
        self.on_execute = None

        self.queries = []
        self.prepared = []
        self.executed = []
        self.chunks = []
        self.connects = []
        self.handles = []
        self.statements = []
        self.pings = 0

    def add_result(self, sql, rows, columns=None):
        rows = list(rows)
        if columns is None:
            columns = len(rows[0]) if rows else 1
        self.results[sql] = (columns, rows)


class FakeDriver:
    def __init__(self, server=None):
        self.server = server if server is not None else FakeServer()

    # Connection

    def init(self):
        if self.server.fail_init:
            return None
        mysql = FakeMysql()
        self.server.handles.append(mysql)
        return mysql

    def options(self, mysql, option, value):
        if option in self.server.option_errors:
            mysql.set(2000, "Unknown option")
            return 1
        mysql.options[option] = value
        return 0

    def real_connect(self, mysql, host, user, passwd, db, port, unix_socket, client_flag):
        kwargs = dict(host=host, user=user, passwd=passwd, db=db, port=port, client_flag=client_flag)
        self.server.connects.append(kwargs)
        if self.server.connect_errors:
            mysql.set(self.server.connect_errors.pop(0))
            return False
        mysql.connect_kwargs = kwargs
        mysql.connected = True
        mysql.thread_id = self._new_thread_id()
        mysql.database = db
        mysql.set(0)
        return True

    def _new_thread_id(self):
        self.server.next_thread_id += 1
        return self.server.next_thread_id

    def close(self, mysql):
        mysql.closed = True
        mysql.connected = False

    def ping(self, mysql):
        self.server.pings += 1
        if mysql.pending is not None:
            mysql.set(CR_COMMANDS_OUT_OF_SYNC)
            return 1
        if self.server.ping_failures:
            self.server.ping_failures -= 1
            mysql.set(2006)
            return 1
        if self.server.reconnect_on_ping:
            self.server.reconnect_on_ping = False
            mysql.thread_id = self._new_thread_id()
        mysql.set(0)
        return 0

    def thread_id(self, mysql):
        return mysql.thread_id

    def select_db(self, mysql, db):
        if db in self.server.unknown_databases:
            mysql.set(1049, f"Unknown database '{db}'")
            return 1
        mysql.database = db
        mysql.set(0)
        return 0

    # Text protocol

    def query(self, mysql, sql):
        if mysql.pending is not None or mysql.more_results:
            mysql.set(CR_COMMANDS_OUT_OF_SYNC)
            return 1
        self.server.queries.append(sql)
        errors = self.server.query_errors.get(sql)
        if errors:
            mysql.set(errors.pop(0))
            return 1
        mysql.set(0)
        if sql in self.server.results:
            columns, rows = self.server.results[sql]
            mysql.pending = FakeResult(columns, rows)
            mysql.affected = len(rows)
        else:
            mysql.affected = self.server.affected.get(sql, 0)
        return 0

    def next_result(self, mysql):
        # The current result must be taken with use_result/store_result first
        if mysql.pending is not None:
            mysql.set(CR_COMMANDS_OUT_OF_SYNC)
            return 1
        if mysql.more_results:
            mysql.pending = mysql.more_results.pop(0)
            return 0
        return -1

    def use_result(self, mysql):
        res, mysql.pending = mysql.pending, None
        return res

    store_result = use_result

    def num_fields(self, res):
        return res.columns

    def fetch_row(self, res):
        assert not res.freed
        if res.pos >= len(res.rows):
            return None
        row = res.rows[res.pos]
        res.pos += 1
        return tuple(None if v is None else _to_bytes(v) for v in row)

    def free_result(self, res):
        if res is not None:
            res.freed = True

    def affected_rows(self, mysql):
        return mysql.affected

    def errno(self, mysql):
        return mysql.code

    def sqlstate(self, mysql):
        return mysql.state

    def error(self, mysql):
        return mysql.msg

    # Prepared statements

    def stmt_init(self, mysql):
        stmt = FakeStmt(mysql)
        self.server.statements.append(stmt)
        return stmt

    def stmt_prepare(self, stmt, sql):
        self.server.prepared.append(sql)
        stmt.rows = None
        stmt.params = []
        stmt.results = []
        stmt.long_data.clear()
        if sql in self.server.prepare_errors:
            stmt.set(self.server.prepare_errors[sql])
            return 1
        stmt.sql = sql
        stmt.param_count = sql.count("?")
        if sql == "select @@max_allowed_packet":
            stmt.field_count = 1
        elif sql in self.server.results:
            stmt.field_count = self.server.results[sql][0]
        else:
            stmt.field_count = 0
        stmt.set(0)
        return 0

    def stmt_param_count(self, stmt):
        return stmt.param_count

    def stmt_field_count(self, stmt):
        return stmt.field_count

    def stmt_bind_param(self, stmt, binds):
        # Like the C library: copy the descriptors, read the buffers at execute time.
        stmt.params = [MysqlBind.from_buffer_copy(binds[i]) for i in range(stmt.param_count)]
        stmt.long_data.clear()
        return 0

    def stmt_bind_result(self, stmt, binds):
        stmt.results = [MysqlBind.from_buffer_copy(binds[i]) for i in range(stmt.field_count)]
        return 0

    def stmt_send_long_data(self, stmt, index, address, length):
        if self.server.send_errors:
            self.server.send_errors -= 1
            stmt.set(2013, "Lost connection")
            return 1
        stmt.long_data[index].append(ctypes.string_at(address, length))
        self.server.chunks.append((index, length))
        return 0

    def stmt_execute(self, stmt):
        stmt.rows = None
        stmt.pos = 0
        if self.server.execute_errors:
            stmt.set(self.server.execute_errors.pop(0))
            return 1
        params = [self._param_value(stmt, i, b) for i, b in enumerate(stmt.params)]
        stmt.long_data.clear()
        stmt.executions.append(params)
        self.server.executed.append((stmt.sql, params))

        rows = None
        if self.server.on_execute is not None:
            rows = self.server.on_execute(stmt.sql, params)
        if rows is None:
            if stmt.sql == "select @@max_allowed_packet":
                rows = [(self.server.max_allowed_packet,)]
            elif stmt.sql in self.server.results:
                rows = self.server.results[stmt.sql][1]
        if stmt.field_count:
            stmt.rows = list(rows or [])
            stmt.affected = len(stmt.rows)
        else:
            stmt.affected = self.server.affected.get(stmt.sql, 1)
        stmt.set(0)
        return 0

    @staticmethod
    def _param_value(stmt, i, b):
        if i in stmt.long_data:
            return b"".join(stmt.long_data[i])
        if b.buffer_type == MYSQL_TYPE_NULL or (b.is_null and b.is_null[0]):
            return None
        if b.buffer_type in _INT_CTYPES:
            signed, unsigned = _INT_CTYPES[b.buffer_type]
            t = unsigned if b.is_unsigned else signed
            return ctypes.cast(b.buffer, ctypes.POINTER(t))[0]
        n = b.length[0] if b.length else b.buffer_length
        return ctypes.string_at(b.buffer, n) if n else b""

    def stmt_fetch(self, stmt):
        if stmt.rows is None or stmt.pos >= len(stmt.rows):
            return MYSQL_NO_DATA
        row = stmt.rows[stmt.pos]
        stmt.pos += 1
        truncated = False
        for b, value in zip(stmt.results, row):
            if value is None:
                if b.is_null:
                    b.is_null[0] = 1
                continue
            if b.is_null:
                b.is_null[0] = 0
            if b.buffer_type in _INT_CTYPES:
                signed, unsigned = _INT_CTYPES[b.buffer_type]
                t = unsigned if b.is_unsigned else signed
                ctypes.cast(b.buffer, ctypes.POINTER(t))[0] = int(value)
                continue
            data = _to_bytes(value)
            if b.length:
                b.length[0] = len(data)
            n = min(len(data), b.buffer_length)
            if n:
                ctypes.memmove(b.buffer, data, n)
            if len(data) > b.buffer_length:
                truncated = True
        return MYSQL_DATA_TRUNCATED if truncated else 0

    def stmt_fetch_column(self, stmt, bind, column, offset):
        if stmt.rows is None or stmt.pos == 0:
            stmt.set(2051, "Attempt to read column without prior row fetch")
            return 1
        value = stmt.rows[stmt.pos - 1][column]
        data = b"" if value is None else _to_bytes(value)[offset:]
        n = min(len(data), bind.buffer_length)
        if n:
            ctypes.memmove(bind.buffer, data, n)
        if bind.length:
            bind.length[0] = len(data)
        return 0

    def stmt_free_result(self, stmt):
        stmt.rows = None
        stmt.pos = 0
        return 0

    def stmt_affected_rows(self, stmt):
        return stmt.affected

    def stmt_close(self, stmt):
        stmt.closed = True
        return 0

    def stmt_errno(self, stmt):
        return stmt.code

    def stmt_sqlstate(self, stmt):
        return stmt.state

    def stmt_error(self, stmt):
        return stmt.msg


def _to_bytes(v):
    if isinstance(v, bytes):
        return v
    return str(v).encode("utf-8")
