import dataclasses
import os
from typing import Optional

from sqlalchemy.engine.url import make_url

DEFAULT_CHARSET = "utf8mb4"


@dataclasses.dataclass(frozen=True)
class ConnectArgs:
    """Arguments for one connect attempt.

    Empty ``password``/``database`` are sent as NULL; ``port=None`` lets the
    client library use its default.
    """

    host: str
    user: str
    password: str = ""
    database: str = ""
    charset: str = DEFAULT_CHARSET
    port: Optional[int] = None

    @classmethod
    def from_url(cls, url) -> "ConnectArgs":
        """Parse ``mysql://user:pw@host:3306/db?charset=utf8mb4`` (any mysql/mariadb driver suffix)."""
        u = make_url(url)
        if u.get_backend_name() not in ("mysql", "mariadb"):
            raise ValueError(f"Not a MySQL/MariaDB URL: {u.render_as_string(hide_password=True)}")
        charset = u.query.get("charset", DEFAULT_CHARSET)
        if isinstance(charset, tuple):
            charset = charset[-1]
        return cls(
            host=u.host or "localhost",
            user=u.username or "",
            password=u.password or "",
            database=u.database or "",
            charset=charset,
            port=u.port,
        )

    @classmethod
    def from_env(cls, var="DATABASE_URL") -> "ConnectArgs":
        url = os.environ.get(var)
        if not url:
            raise KeyError(f"Environment variable {var} is not set")
        return cls.from_url(url)
