"""Page store service — the only reader and writer of wiki pages.

Learn: every route (HTML and JSON) and the CLI go through this one façade.
Each operation:

1. checks one connection out of the shared engine pool,
2. runs exactly one statement from the SQL query map,
3. returns the connection, and
4. resolves to an Outcome — a value on success, a typed PageStoreError on
   failure. Nothing raises past the operation boundary; callers decide how
   a failure is rendered (JSON body, HTTP status, CLI message).

There is no cross-operation transaction. Two concurrent creates of the same
name are settled by the table's unique constraint: the first commit wins,
the second resolves to DuplicateNameError.

"Not found" on reads is data (PageLookup.found is False), not an error.
Deleting an id that does not exist is a success — older clients depend on
delete being idempotent.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from wikiserver.db.queries import SqlQuery, load_sql_queries

logger = structlog.get_logger()

T = TypeVar("T")


# ─── Errors ─────────────────────────────────────────────


class PageStoreError(Exception):
    """Base class for every failure a page store operation can report."""


class DuplicateNameError(PageStoreError):
    def __init__(self, name: str):
        super().__init__(f"A page named {name!r} already exists")
        self.name = name


class PageNotFoundError(PageStoreError):
    def __init__(self, page_id: int):
        super().__init__(f"There is no page with ID {page_id}")
        self.page_id = page_id


class StorageError(PageStoreError):
    """Connection or query failure. The cause is logged where it happens."""


# ─── Results ────────────────────────────────────────────


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a page store operation: a value or a typed failure."""

    value: Optional[T] = None
    error: Optional[PageStoreError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PageStoreError) -> "Outcome[T]":
        return cls(error=error)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value, or raise the failure."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass(frozen=True)
class PageLookup:
    """A single-page read. Only `found` is meaningful when found is False."""

    found: bool
    id: Optional[int] = None
    name: Optional[str] = None
    content: Optional[str] = None

    @property
    def raw_content(self) -> Optional[str]:
        return self.content


NOT_FOUND = PageLookup(found=False)


@dataclass(frozen=True)
class PageRecord:
    id: int
    name: str
    content: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "content": self.content}


# ─── Service ────────────────────────────────────────────


class PageStoreService:
    """Asynchronous CRUD façade over the pages table."""

    def __init__(self, engine: AsyncEngine, queries: dict[SqlQuery, str]):
        self.engine = engine
        self.queries = queries

    @classmethod
    async def create(
        cls,
        engine: AsyncEngine,
        queries: Optional[dict[SqlQuery, str]] = None,
    ) -> "PageStoreService":
        """Build the service and make sure the pages table exists.

        Unlike the operations below this raises: a store that can't prepare
        its table must abort startup rather than serve requests.
        """
        service = cls(engine, queries or load_sql_queries(dialect=engine.dialect.name))
        try:
            async with engine.begin() as conn:
                await conn.execute(service._sql(SqlQuery.CREATE_PAGES_TABLE))
        except SQLAlchemyError as e:
            logger.error("pages.prepare_failed", error=str(e))
            raise StorageError(f"Database preparation error: {e}") from e
        return service

    def _sql(self, query: SqlQuery):
        return text(self.queries[query])

    def _storage_failure(self, operation: str, error: Exception) -> Outcome:
        logger.error("pages.query_failed", operation=operation, error=str(error))
        return Outcome.failure(StorageError(f"Database query error: {error}"))

    # ─── Reads ──────────────────────────────────────────

    async def fetch_all_pages(self) -> Outcome[list[str]]:
        """All page names, sorted lexicographically."""
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(self._sql(SqlQuery.ALL_PAGES))
                names = sorted(row[0] for row in result)
        except SQLAlchemyError as e:
            return self._storage_failure("fetch_all_pages", e)
        return Outcome.success(names)

    async def fetch_page(self, name: str) -> Outcome[PageLookup]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    self._sql(SqlQuery.GET_PAGE), {"name": name}
                )
                row = result.first()
        except SQLAlchemyError as e:
            return self._storage_failure("fetch_page", e)

        if row is None:
            return Outcome.success(NOT_FOUND)
        return Outcome.success(PageLookup(found=True, id=row[0], name=name, content=row[1]))

    async def fetch_page_by_id(self, page_id: int) -> Outcome[PageLookup]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    self._sql(SqlQuery.GET_PAGE_BY_ID), {"id": page_id}
                )
                row = result.first()
        except SQLAlchemyError as e:
            return self._storage_failure("fetch_page_by_id", e)

        if row is None:
            return Outcome.success(NOT_FOUND)
        return Outcome.success(
            PageLookup(found=True, id=row[0], name=row[1], content=row[2])
        )

    async def fetch_all_pages_data(self) -> Outcome[list[PageRecord]]:
        """Every page with its content, for listings and exports."""
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(self._sql(SqlQuery.ALL_PAGES_DATA))
                pages = [PageRecord(id=r[0], name=r[1], content=r[2]) for r in result]
        except SQLAlchemyError as e:
            return self._storage_failure("fetch_all_pages_data", e)
        return Outcome.success(pages)

    # ─── Writes ─────────────────────────────────────────

    async def create_page(self, title: str, markdown: str) -> Outcome[None]:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    self._sql(SqlQuery.CREATE_PAGE),
                    {"name": title, "content": markdown},
                )
        except IntegrityError as e:
            # Constraint messages differ by backend and by which index is
            # checked first, so ask the table whether the name is taken.
            existing = await self.fetch_page(title)
            if existing.succeeded and existing.value.found:
                logger.info("pages.duplicate_name", name=title)
                return Outcome.failure(DuplicateNameError(title))
            return self._storage_failure("create_page", e)
        except SQLAlchemyError as e:
            return self._storage_failure("create_page", e)

        logger.info("pages.created", name=title)
        return Outcome.success()

    async def save_page(self, page_id: int, markdown: str) -> Outcome[None]:
        """Overwrite a page's content. Zero rows updated means no such page."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    self._sql(SqlQuery.SAVE_PAGE),
                    {"id": page_id, "content": markdown},
                )
                updated = result.rowcount
        except SQLAlchemyError as e:
            return self._storage_failure("save_page", e)

        if updated == 0:
            return Outcome.failure(PageNotFoundError(page_id))
        logger.info("pages.saved", page_id=page_id)
        return Outcome.success()

    async def delete_page(self, page_id: int) -> Outcome[None]:
        """Delete a page. Unknown ids succeed too (zero rows is fine)."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    self._sql(SqlQuery.DELETE_PAGE), {"id": page_id}
                )
                deleted = result.rowcount
        except SQLAlchemyError as e:
            return self._storage_failure("delete_page", e)

        logger.info("pages.deleted", page_id=page_id, rows=deleted)
        return Outcome.success()


# ─── Process-wide instance ──────────────────────────────

# Initialized in the app lifespan, after the engine.
_page_store: Optional[PageStoreService] = None


async def init_page_store(
    engine: AsyncEngine,
    queries: Optional[dict[SqlQuery, str]] = None,
) -> PageStoreService:
    global _page_store
    _page_store = await PageStoreService.create(engine, queries)
    return _page_store


def close_page_store() -> None:
    global _page_store
    _page_store = None


def get_page_store() -> PageStoreService:
    """FastAPI dependency — the shared page store."""
    if _page_store is None:
        raise RuntimeError("Page store not initialized. Call init_page_store() first.")
    return _page_store
