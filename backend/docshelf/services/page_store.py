"""
DocShelf Backend — Abstract Page Storage Interface
====================================================

What:  Abstract base class defining the contract of the page storage collaborator.
How:   PageRepository implements it on top of an async SQLAlchemy session;
       tests may substitute their own implementation.
Who:   Called by PageService for every read and write of pages.

Contract:
    - lock_partition() serializes writers of one API until the transaction ends
    - find_by_api(for_update=True) returns the stored rows, not session-cached state
    - find_by_api() returns a complete, consistent snapshot of one API's pages
    - every implementation-specific failure is wrapped in StorageError
    - "not found" is expressed by None / False returns, never by StorageError
"""

import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

from docshelf.models.page import Page


class PageStore(ABC):
    """Storage collaborator for pages."""

    @abstractmethod
    async def find_by_id(self, page_id: uuid.UUID) -> Optional[Page]:
        """Return the page, or None when it does not exist."""
        ...

    @abstractmethod
    async def lock_partition(self, api_id: str) -> None:
        """
        Block other transactions writing pages of `api_id` until this one ends.

        Also covers rows that do not exist yet (appends), which row locks
        cannot. A no-op where the database offers no such lock.
        """
        ...

    @abstractmethod
    async def find_by_api(self, api_id: str, for_update: bool = False) -> List[Page]:
        """
        Return every page of an API, ordered by position then id.

        Args:
            api_id:     The partition to read.
            for_update: Lock the returned rows until the transaction ends,
                        where the database supports it, and overwrite pages
                        already loaded in the session with the stored values.

        Raises:
            StorageError: The query failed.
        """
        ...

    @abstractmethod
    async def create(self, page: Page) -> Page:
        """Persist a new page and return it."""
        ...

    @abstractmethod
    async def update(self, page: Page) -> Page:
        """
        Persist the current state of an already stored page.

        Raises:
            StorageError: The write failed. The caller decides whether to
                continue; PageService aborts the remaining write plan.
        """
        ...

    @abstractmethod
    async def delete(self, page_id: uuid.UUID) -> bool:
        """Delete a page; return True if a row was removed."""
        ...

    @abstractmethod
    async def find_max_position(self, api_id: str) -> Optional[int]:
        """Return the highest position used by the API, or None if it has no pages."""
        ...
