"""Database and schema helpers built on the text-query path."""

from .errors import DataError, raise_error
from .query import ResultKind, affect, query, query_result, query_string, query_ulong


def _literal(s):
    return "'" + s.replace("\\", "\\\\").replace("'", "\\'") + "'"


def use_database(conn, name):
    driver = conn.driver
    mysql = conn.acquire()
    if driver.select_db(mysql, name):
        raise_error(driver, mysql, f"Use database {name}")


def get_table_schema(conn, db_name, table_name):
    """``SHOW CREATE TABLE`` text with every `db_name`. qualifier stripped."""
    db_prefix = f"`{db_name}`."
    # When parent tables/views are missing the server always prints db qualifiers,
    # even for the current database.
    return query_string(conn, f"show create table {db_prefix}{table_name}", 1).replace(db_prefix, "")


def is_case_sensitive(conn):
    kind = query_ulong(conn, "show variables like 'lower\\_case\\_table\\_names'", 1)
    if kind == 0:  # Unix-like
        return True
    if kind in (1, 2):  # Windows; macOS stores lower case and compares case-insensitively
        return False
    raise DataError(f"Unexpected lower_case_table_names value {kind}")


def get_database_collation(conn, db_name):
    """``(charset, collation)`` of a database, or None if it does not exist."""
    sql = ("select DEFAULT_CHARACTER_SET_NAME,DEFAULT_COLLATION_NAME from INFORMATION_SCHEMA.SCHEMATA"
           f" where SCHEMA_NAME={_literal(db_name)}")
    with query_result(conn, sql, ResultKind.USE) as res:
        row = res.fetch_row()
    if row is None:
        return None
    return tuple(v.decode("utf-8") for v in row[:2])


def get_clone_database_options(conn, db_name):
    collation = get_database_collation(conn, db_name)
    if collation is None:
        return ""
    charset, collate = collation
    return f" character set '{charset}' collate '{collate}'"


def reset_database(conn, db_name, template_db=""):
    """Drop and recreate ``db_name``, copying charset and collation from ``template_db``."""
    extra = get_clone_database_options(conn, template_db) if template_db else ""
    query(conn, f"drop database if exists {db_name}")
    affect(conn, f"create database {db_name}{extra}")
