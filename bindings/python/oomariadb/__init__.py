from .errors import (
    Error, Warning, InterfaceError, DatabaseError, InternalError, OperationalError,
    ProgrammingError, IntegrityError, DataError, NotSupportedError, LogicError,
)
from .native import (
    load_library, NativeDriver, MysqlBind,
    ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK, MYSQL_NO_DATA, MYSQL_DATA_TRUNCATED,
)
from .config import ConnectArgs
from .binding import (
    BindBuffer, type_of_int_size, bind_int, bind_null, bind_str_param, bind_str_buffer,
    bind_long_blob, end_str,
)
from .statement import Statement
from .query import (
    ResultKind, Result, flush_results, query, query_result, affect, query_column,
    query_string, query_ulong,
)
from .connection import Connection
from .locks import LockState, TableLock
from .schema import (
    use_database, get_table_schema, is_case_sensitive, get_database_collation,
    get_clone_database_options, reset_database,
)

threadsafety = 1  # Threads may share the module, but not connections


def connect(dsn, **kwargs):
    """Connect right away.

    ``dsn`` is a URL (``mysql://user:pw@host/db``), a :class:`ConnectArgs`, or a
    callable returning one. ``driver`` and ``max_retries`` are passed through
    to :class:`Connection`.
    """
    if isinstance(dsn, str):
        dsn = ConnectArgs.from_url(dsn)
    conn = Connection(dsn, **kwargs)
    conn.acquire()
    return conn
