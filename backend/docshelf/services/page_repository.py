"""
DocShelf Backend — SQLAlchemy Page Repository
===============================================

What:  PageStore implementation backed by an async SQLAlchemy session.
How:   Each method runs one statement (or one flush) and translates
       SQLAlchemyError into StorageError with the page/API in the context.
Who:   Built per call by PageService around the request's session.

Transactions are not committed here; the caller owns the session
(get_db_session, or PageService on the write paths).

Cross-process locking (PostgreSQL):
    lock_partition()             pg_advisory_xact_lock(hashtext(api_id))
    find_by_api(for_update=True) SELECT ... FOR UPDATE, refreshing cached pages
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docshelf.exceptions import StorageError
from docshelf.models.page import Page
from docshelf.services.page_store import PageStore

logger = logging.getLogger(__name__)


class PageRepository(PageStore):
    """Async SQLAlchemy storage for pages."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def find_by_id(self, page_id: uuid.UUID) -> Optional[Page]:
        try:
            result = await self._db.execute(select(Page).where(Page.id == page_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load page %s: %s", page_id, str(e))
            raise StorageError(
                message="Could not retrieve the page. Please try again.",
                context={"page_id": str(page_id), "error_type": type(e).__name__},
            ) from e

    async def lock_partition(self, api_id: str) -> None:
        # Transaction-scoped advisory lock; released by commit or rollback
        if self._db.get_bind().dialect.name != "postgresql":
            return
        try:
            await self._db.execute(select(func.pg_advisory_xact_lock(func.hashtext(api_id))))
        except SQLAlchemyError as e:
            logger.error("Failed to lock the pages of API %s: %s", api_id, str(e))
            raise StorageError(
                message="Could not lock the pages. Please try again.",
                context={"api_id": api_id, "error_type": type(e).__name__},
            ) from e

    async def find_by_api(self, api_id: str, for_update: bool = False) -> List[Page]:
        query = (
            select(Page)
            .where(Page.api_id == api_id)
            .order_by(Page.position.asc(), Page.id.asc())
        )
        if for_update:
            # Rendered as FOR UPDATE on PostgreSQL, dropped on SQLite.
            # populate_existing: pages already in the session take the stored values
            query = query.with_for_update().execution_options(populate_existing=True)
        try:
            result = await self._db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list pages of API %s: %s", api_id, str(e))
            raise StorageError(
                message="Could not retrieve the pages. Please try again.",
                context={"api_id": api_id, "error_type": type(e).__name__},
            ) from e

    async def create(self, page: Page) -> Page:
        try:
            self._db.add(page)
            await self._db.flush()
            return page
        except SQLAlchemyError as e:
            logger.error("Failed to create page %s for API %s: %s", page.id, page.api_id, str(e))
            raise StorageError(
                message="Could not create the page. Please try again.",
                context={
                    "api_id": page.api_id,
                    "page_id": str(page.id),
                    "error_type": type(e).__name__,
                },
            ) from e

    async def update(self, page: Page) -> Page:
        try:
            await self._db.flush()
            return page
        except SQLAlchemyError as e:
            logger.error("Failed to update page %s: %s", page.id, str(e))
            raise StorageError(
                message="Could not update the page. Please try again.",
                context={
                    "api_id": page.api_id,
                    "page_id": str(page.id),
                    "error_type": type(e).__name__,
                },
            ) from e

    async def delete(self, page_id: uuid.UUID) -> bool:
        try:
            result = await self._db.execute(delete(Page).where(Page.id == page_id))
            return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            logger.error("Failed to delete page %s: %s", page_id, str(e))
            raise StorageError(
                message="Could not delete the page. Please try again.",
                context={"page_id": str(page_id), "error_type": type(e).__name__},
            ) from e

    async def find_max_position(self, api_id: str) -> Optional[int]:
        try:
            result = await self._db.execute(
                select(func.max(Page.position)).where(Page.api_id == api_id)
            )
            return result.scalar()
        except SQLAlchemyError as e:
            logger.error("Failed to compute max position for API %s: %s", api_id, str(e))
            raise StorageError(
                message="Could not compute the page order. Please try again.",
                context={"api_id": api_id, "error_type": type(e).__name__},
            ) from e
