"""SQL query map for the page store.

Learn: the page store never builds SQL on the fly. Every statement it runs
is looked up by SqlQuery in a static mapping, loaded once at startup. The
defaults below run on SQLite; PostgreSQL swaps in its own table definition
and insert (DIALECT_QUERIES). A deployment can override individual
statements with a JSON file (WIKI_SQL_QUERIES_FILE) keyed by the kebab-case
names, e.g.:

    {"all-pages": "SELECT name FROM wiki_pages"}

Statements use named bind parameters (:name, :content, :id).
"""

import enum
import json
from pathlib import Path
from typing import Optional


class SqlQuery(enum.Enum):
    CREATE_PAGES_TABLE = "create-pages-table"
    ALL_PAGES = "all-pages"
    GET_PAGE = "get-page"
    CREATE_PAGE = "create-page"
    SAVE_PAGE = "save-page"
    DELETE_PAGE = "delete-page"
    ALL_PAGES_DATA = "all-pages-data"
    GET_PAGE_BY_ID = "get-page-by-id"


# SQLite serializes writers, so computing the next id inside the INSERT is
# race-free there. The first page gets id 0.
DEFAULT_QUERIES: dict[SqlQuery, str] = {
    SqlQuery.CREATE_PAGES_TABLE: (
        "CREATE TABLE IF NOT EXISTS pages ("
        "id INTEGER NOT NULL PRIMARY KEY, "
        "name VARCHAR(255) NOT NULL, "
        "content TEXT NOT NULL, "
        "CONSTRAINT uq_pages_name UNIQUE (name))"
    ),
    SqlQuery.ALL_PAGES: "SELECT name FROM pages",
    SqlQuery.GET_PAGE: "SELECT id, content FROM pages WHERE name = :name",
    SqlQuery.CREATE_PAGE: (
        "INSERT INTO pages (id, name, content) "
        "SELECT COALESCE(MAX(id) + 1, 0), :name, :content FROM pages"
    ),
    SqlQuery.SAVE_PAGE: "UPDATE pages SET content = :content WHERE id = :id",
    SqlQuery.DELETE_PAGE: "DELETE FROM pages WHERE id = :id",
    SqlQuery.ALL_PAGES_DATA: "SELECT id, name, content FROM pages ORDER BY id",
    SqlQuery.GET_PAGE_BY_ID: "SELECT id, name, content FROM pages WHERE id = :id",
}

# Concurrent transactions can read the same MAX(id) on PostgreSQL, so the
# database assigns ids from an identity sequence starting at 0.
DIALECT_QUERIES: dict[str, dict[SqlQuery, str]] = {
    "postgresql": {
        SqlQuery.CREATE_PAGES_TABLE: (
            "CREATE TABLE IF NOT EXISTS pages ("
            "id INTEGER GENERATED BY DEFAULT AS IDENTITY "
            "(MINVALUE 0 START WITH 0) PRIMARY KEY, "
            "name VARCHAR(255) NOT NULL, "
            "content TEXT NOT NULL, "
            "CONSTRAINT uq_pages_name UNIQUE (name))"
        ),
        SqlQuery.CREATE_PAGE: "INSERT INTO pages (name, content) VALUES (:name, :content)",
    },
}


class QueryConfigError(Exception):
    """Raised when a query override file can't be used."""


def load_sql_queries(
    path: Optional[str] = None,
    dialect: str = "sqlite",
) -> dict[SqlQuery, str]:
    """Return the query map for `dialect`, with overrides from a JSON file.

    Unknown keys fail loudly: a typo in an override file would otherwise
    silently fall back to the default statement.
    """
    queries = dict(DEFAULT_QUERIES)
    queries.update(DIALECT_QUERIES.get(dialect, {}))
    if not path:
        return queries

    try:
        overrides = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise QueryConfigError(f"Could not read SQL queries from {path}: {e}") from e

    if not isinstance(overrides, dict):
        raise QueryConfigError(f"{path} must contain a JSON object")

    for key, statement in overrides.items():
        try:
            query = SqlQuery(key)
        except ValueError:
            raise QueryConfigError(f"Unknown SQL query key {key!r} in {path}") from None
        if not isinstance(statement, str) or not statement.strip():
            raise QueryConfigError(f"SQL query {key!r} in {path} must be a non-empty string")
        queries[query] = statement
    return queries
