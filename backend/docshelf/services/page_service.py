"""
DocShelf Backend — Page Service (Page Directory)
==================================================

What:  CRUD for the documentation pages of an API, plus reordering.
How:   Builds a PageRepository around the caller's session, converts between
       request/response schemas and the Page model, and hands position
       changes to the reindexer.
Who:   Called by the page route handlers.

Reorder Flow (PUT with a new position):
    ┌────────────┐   ┌──────────────┐   ┌───────────┐   ┌──────────────┐
    │ Partition  │──▶│   Snapshot   │──▶│ reindex() │──▶│ Apply plan,  │
    │   locks    │   │ FOR UPDATE   │   │  (pure)   │   │ one row each │
    └────────────┘   └──────────────┘   └───────────┘   └──────┬───────┘
                                                               ▼
                                                   commit │ rollback on error

    Every write in a partition (create, update, delete, compact) runs under
    that API's in-process lock and, on PostgreSQL, its advisory lock, and
    commits before releasing them. Positions are taken from the locked
    snapshot, refreshed from the database, so a page read earlier in the
    session never contributes a stale position. A failed write aborts the
    rest of the plan and rolls the whole transaction back.
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docshelf.config import settings
from docshelf.exceptions import (
    PageAlreadyExistsError,
    PageNotFoundError,
    PageReorderError,
    StorageError,
    ValidationError,
)
from docshelf.models.page import Page
from docshelf.schemas.page import (
    CompactResponse,
    MaxPositionResponse,
    NewPageRequest,
    PageListItem,
    PageResponse,
    UpdatePageRequest,
)
from docshelf.services.page_repository import PageRepository
from docshelf.services.page_store import PageStore
from docshelf.services.partition_lock import PartitionLocks
from docshelf.services.reindexer import (
    POSITION_BASE,
    PositionChange,
    check_position,
    compact,
    is_dense,
    reindex,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
YAML_CONTENT_TYPE = "text/yaml"


def detect_content_type(content: Optional[str]) -> str:
    """
    Sniff the media type of a page body.

    JSON when the body parses as JSON, otherwise YAML (Swagger/RAML
    documents are one or the other). An absent body counts as JSON.
    """
    if content is None:
        return JSON_CONTENT_TYPE
    try:
        json.loads(content)
    except ValueError:
        return YAML_CONTENT_TYPE
    return JSON_CONTENT_TYPE


class PageService:
    """
    Business logic layer for page operations.

    Responsibilities:
        - list_pages() / get_page(): reads, ordered by position
        - create_page(): id generation, timestamps, position assignment
        - update_page(): field updates, reorder when the position changes
        - delete_page(): removal without renumbering
        - find_max_position(): highest and next free position
        - compact_pages(): close gaps left by deletions

    Error Handling Strategy:
        Storage failures arrive as StorageError from the repository and
        propagate unchanged, except inside a write plan where they become
        PageReorderError (with the API, failed page and progress).
    """

    def __init__(self, locks: Optional[PartitionLocks] = None):
        self.locks = locks or PartitionLocks()

    def _store(self, db: AsyncSession) -> PageStore:
        return PageRepository(db)

    @asynccontextmanager
    async def _partition_transaction(self, db: AsyncSession, api_id: str) -> AsyncIterator[None]:
        """
        Lock the API's partition, run the block, then commit.

        Any exit other than normal completion (error, cancellation) rolls
        the session back before the lock is released.
        """
        async with self.locks.hold(api_id, timeout=settings.reorder_lock_timeout):
            try:
                yield
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_pages(self, db: AsyncSession, api_id: str) -> List[PageListItem]:
        pages = await self._store(db).find_by_api(api_id)
        return [self._to_list_item(page) for page in pages]

    async def get_page(self, db: AsyncSession, api_id: str, page_id: uuid.UUID) -> PageResponse:
        logger.debug("Find page by ID: %s", page_id)
        page = await self._load(self._store(db), api_id, page_id)
        return self._to_response(page)

    async def find_max_position(self, db: AsyncSession, api_id: str) -> MaxPositionResponse:
        logger.debug("Find max page position for API %s", api_id)
        max_position = await self._store(db).find_max_position(api_id)
        return MaxPositionResponse(
            api_id=api_id,
            max_position=max_position,
            next_position=self._next_position(max_position),
        )

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_page(
        self,
        db: AsyncSession,
        api_id: str,
        new_page: NewPageRequest,
    ) -> PageResponse:
        """
        Create a page for an API.

        Without a position the page is appended after the last one. With a
        position, the page is appended and then moved there, shifting the
        pages at and after that slot. Valid positions are 0..n for an API
        with n pages, the same range a move of the new page accepts.

        Raises:
            ValidationError: Name longer than the configured limit.
            PageAlreadyExistsError: The generated ID is already taken.
            InvalidReorderRequest: Requested position past the end.
            StorageError / PageReorderError: Storage failed; nothing saved.
        """
        logger.debug("Create page %r for API %s", new_page.name, api_id)
        self._check_name(new_page.name)
        store = self._store(db)

        async with self._partition_transaction(db, api_id):
            siblings = await self._locked_snapshot(store, api_id)
            requested = new_page.position
            if requested is not None:
                check_position(requested, len(siblings) + 1)

            page_id = uuid.uuid4()
            if await store.find_by_id(page_id) is not None:
                raise PageAlreadyExistsError(str(page_id))

            max_position = max((s.position for s in siblings), default=None)
            now = datetime.now(timezone.utc)
            page = Page(
                id=page_id,
                api_id=api_id,
                name=new_page.name,
                type=new_page.type,
                content=new_page.content,
                last_contributor=new_page.last_contributor,
                position=self._next_position(max_position),
                published=False,
                created_at=now,
                updated_at=now,
            )
            await store.create(page)

            # Slot n is the end of the list, which the append already reached
            if requested is not None and requested < POSITION_BASE + len(siblings):
                await self._reorder_and_save(store, api_id, page, requested, siblings + [page])

            logger.info("Created page %s for API %s at position %d", page.id, api_id, page.position)
            return self._to_response(page)

    async def update_page(
        self,
        db: AsyncSession,
        api_id: str,
        page_id: uuid.UUID,
        update: UpdatePageRequest,
    ) -> PageResponse:
        """
        Replace the writable fields of a page.

        created_at, type and api_id are kept from the stored page. When the
        requested position differs from the stored one, the page and its
        siblings are renumbered in the same transaction. The stored position
        is read from the locked snapshot, never from an earlier read.

        Raises:
            PageNotFoundError: No such page under this API.
            InvalidReorderRequest: Requested position out of range.
            PageReorderError: A write of the reorder plan failed; nothing saved.
        """
        logger.debug("Update page %s of API %s", page_id, api_id)
        self._check_name(update.name)
        store = self._store(db)

        async with self._partition_transaction(db, api_id):
            siblings = await self._locked_snapshot(store, api_id)
            page = next((s for s in siblings if s.id == page_id), None)
            if page is None:
                raise PageNotFoundError(str(page_id), api_id=api_id)

            page.name = update.name
            page.content = update.content
            page.last_contributor = update.last_contributor
            page.published = update.published
            page.updated_at = datetime.now(timezone.utc)

            if update.position != page.position:
                await self._reorder_and_save(store, api_id, page, update.position, siblings)
            else:
                await store.update(page)

            return self._to_response(page)

    async def delete_page(self, db: AsyncSession, api_id: str, page_id: uuid.UUID) -> None:
        """
        Delete a page. Its siblings keep their positions, which leaves a gap
        until compact_pages() is run.
        """
        logger.debug("Delete page %s of API %s", page_id, api_id)
        store = self._store(db)
        async with self._partition_transaction(db, api_id):
            await store.lock_partition(api_id)
            page = await self._load(store, api_id, page_id)
            await store.delete(page.id)
        logger.info("Deleted page %s of API %s", page_id, api_id)

    async def compact_pages(self, db: AsyncSession, api_id: str) -> CompactResponse:
        """Renumber an API's pages to 0..n-1, keeping their relative order."""
        store = self._store(db)
        async with self._partition_transaction(db, api_id):
            await store.lock_partition(api_id)
            siblings = await store.find_by_api(api_id, for_update=True)
            plan = compact(siblings)
            await self._apply_plan(store, api_id, {p.id: p for p in siblings}, plan)
            response = CompactResponse(api_id=api_id, moved=len(plan), total=len(siblings))
        if plan:
            logger.info("Compacted pages of API %s: %d of %d moved", api_id, len(plan), len(siblings))
        return response

    # ── Reorder ───────────────────────────────────────────────────────────

    async def _locked_snapshot(self, store: PageStore, api_id: str) -> List[Page]:
        """
        Lock the API's pages across processes and read them as stored.

        Must run inside _partition_transaction; the locks last until it ends.
        """
        await store.lock_partition(api_id)
        siblings = await store.find_by_api(api_id, for_update=True)
        if not is_dense(sibling.position for sibling in siblings):
            logger.warning(
                "Pages of API %s are not numbered 0..%d; compact them to close the gaps",
                api_id,
                len(siblings) - 1,
            )
        return siblings

    async def _reorder_and_save(
        self,
        store: PageStore,
        api_id: str,
        page: Page,
        requested_position: int,
        siblings: List[Page],
    ) -> None:
        """
        Move `page` to `requested_position` and shift its siblings.

        `siblings` is the locked snapshot from _locked_snapshot(), including
        `page` with its stored position; the plan assigns the new one.
        """
        plan = reindex(siblings, page.id, requested_position)
        logger.debug(
            "Reorder plan for page %s of API %s: %s",
            page.id,
            api_id,
            [(str(change.page_id), change.position) for change in plan],
        )
        await self._apply_plan(store, api_id, {s.id: s for s in siblings}, plan)
        logger.info(
            "Moved page %s of API %s to position %d (%d pages renumbered)",
            page.id,
            api_id,
            requested_position,
            len(plan),
        )

    async def _apply_plan(
        self,
        store: PageStore,
        api_id: str,
        pages: Dict[uuid.UUID, Page],
        plan: List[PositionChange],
    ) -> None:
        """Persist each change in plan order; the first failure aborts the rest."""
        for applied, change in enumerate(plan):
            page = pages[change.page_id]
            page.position = change.position
            try:
                await store.update(page)
            except StorageError as e:
                logger.error(
                    "Reorder of API %s aborted at page %s after %d of %d writes",
                    api_id,
                    change.page_id,
                    applied,
                    len(plan),
                )
                raise PageReorderError(
                    api_id=api_id,
                    page_id=str(change.page_id),
                    applied=applied,
                    abandoned=len(plan) - applied,
                    context={"cause": e.context},
                ) from e

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _load(self, store: PageStore, api_id: str, page_id: uuid.UUID) -> Page:
        page = await store.find_by_id(page_id)
        if page is None or page.api_id != api_id:
            raise PageNotFoundError(str(page_id), api_id=api_id)
        return page

    @staticmethod
    def _next_position(max_position: Optional[int]) -> int:
        return POSITION_BASE if max_position is None else max_position + 1

    @staticmethod
    def _check_name(name: str) -> None:
        if len(name) > settings.max_page_name_length:
            raise ValidationError(
                message=(
                    f"Page name is too long ({len(name)} characters). "
                    f"Maximum is {settings.max_page_name_length}."
                ),
                field="name",
            )

    @staticmethod
    def _to_response(page: Page) -> PageResponse:
        return PageResponse(
            id=page.id,
            api_id=page.api_id,
            name=page.name,
            type=page.type,
            content=page.content,
            content_type=detect_content_type(page.content),
            last_contributor=page.last_contributor,
            last_modification_date=page.updated_at,
            position=page.position,
            published=page.published,
        )

    @staticmethod
    def _to_list_item(page: Page) -> PageListItem:
        return PageListItem.model_validate(page)


# ── Singleton Instance ────────────────────────────────────────────────────
page_service = PageService()
