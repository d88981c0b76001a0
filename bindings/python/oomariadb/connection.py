import logging

from .config import ConnectArgs
from .errors import DatabaseError, LogicError, OperationalError, error_suffix
from .native import (
    NativeDriver, CLIENT_COMPRESS, CLIENT_MULTI_STATEMENTS,
    MYSQL_OPT_RECONNECT, MYSQL_SET_CHARSET_NAME,
)
from .query import flush_results, submit
from .statement import Statement

logger = logging.getLogger(__name__)

SQL_MODE = "SET sql_mode = 'STRICT_ALL_TABLES'"


class Connection:
    """A self-healing session to one server.

    ``connect_args`` is either a :class:`ConnectArgs` or a callable returning
    one; a callable is invoked again on every (re)connect so credentials may
    rotate. The connection is established lazily by :meth:`acquire`.

    Not safe for concurrent use: serialize all calls on one instance.
    """

    def __init__(self, connect_args, *, driver=None, max_retries=None):
        if isinstance(connect_args, ConnectArgs):
            fixed = connect_args
            connect_args = lambda: fixed
        self._get_connect_args = connect_args
        self._driver = driver if driver is not None else NativeDriver()
        self.max_retries = max_retries
        self._mysql = None
        self._thread_id = 0
        self._stmt = None
        self._epoch = 0

    @property
    def driver(self):
        return self._driver

    @property
    def epoch(self):
        """Bumped on every connect and on every server-side session change."""
        return self._epoch

    @property
    def connected(self):
        return self._mysql is not None

    def acquire(self):
        """Return a native handle that just passed a liveness probe."""
        if self._stmt is not None:
            self._stmt.clear()

        if self._mysql is not None:
            flush_results(self._driver, self._mysql)
            if not self._driver.ping(self._mysql):
                cur_id = self._driver.thread_id(self._mysql)
                if cur_id != self._thread_id:
                    logger.info("ping obtained new thread id %d obsoleting the old %d", cur_id, self._thread_id)
                    self._thread_id = cur_id
                    self._drop_statement()
                    self._epoch += 1
                return self._mysql
            logger.warning("ping failed%s", error_suffix(self._driver, self._mysql))

        self._connect()
        return self._mysql

    def connect(self):
        """Drop any current session and connect anew."""
        self._connect()
        return self._mysql

    def _connect(self):
        if self._mysql is None:
            logger.debug("About to connect")
        self.disconnect()

        driver = self._driver
        mysql = driver.init()
        if not mysql:
            raise LogicError("mysql_init() failed")

        try:
            args = self._get_connect_args()
        except BaseException:
            driver.close(mysql)
            raise

        if driver.options(mysql, MYSQL_SET_CHARSET_NAME, args.charset):
            what = "Fail to set charset"
        elif driver.options(mysql, MYSQL_OPT_RECONNECT, True):
            what = "Fail to enable auto-reconnect"
        elif driver.real_connect(mysql, args.host, args.user, args.password or None, args.database or None,
                                 args.port or 0, None, CLIENT_MULTI_STATEMENTS | CLIENT_COMPRESS):
            try:
                submit(driver, mysql, SQL_MODE, max_retries=self.max_retries)
            except DatabaseError:
                driver.close(mysql)
                raise
            self._mysql = mysql
            self._thread_id = driver.thread_id(mysql)
            self._epoch += 1
            logger.info("Connected to %s as user '%s' and thread id %d", args.host, args.user, self._thread_id)
            return
        else:
            what = "Fail to connect"

        # Something went wrong
        code = driver.errno(mysql)
        sqlstate = driver.sqlstate(mysql) if code else None
        msg = what + error_suffix(driver, mysql)
        driver.close(mysql)
        raise OperationalError(msg, errno=code or None, sqlstate=sqlstate)

    def _drop_statement(self):
        if self._stmt is not None:
            self._stmt.close()
            self._stmt = None

    def disconnect(self):
        self._drop_statement()
        if self._mysql is not None:
            self._driver.close(self._mysql)
            self._mysql = None

    close = disconnect

    def statement(self):
        """The connection's own prepared statement, valid for the current session."""
        mysql = self.acquire()
        if self._stmt is None:
            self._stmt = Statement(self._driver, mysql, owner=self, max_retries=self.max_retries)
        return self._stmt

    def thread_id(self):
        if self._mysql is None:
            self._connect()
        return self._thread_id

    def dup(self):
        """A new, unconnected Connection with the same arguments and driver."""
        return Connection(self._get_connect_args, driver=self._driver, max_retries=self.max_retries)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
