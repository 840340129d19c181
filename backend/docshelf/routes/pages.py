"""
DocShelf Backend — Page Route Handlers
========================================

What:  CRUD endpoints for the documentation pages of an API.
How:   Extracts path/body parameters, delegates to PageService, returns JSON.

Route Inventory:
    GET    /api/apis/{api_id}/pages                 list, ordered by position
    POST   /api/apis/{api_id}/pages                 create
    GET    /api/apis/{api_id}/pages/max-position    highest / next position
    POST   /api/apis/{api_id}/pages/compact         close position gaps
    GET    /api/apis/{api_id}/pages/{page_id}       read
    PUT    /api/apis/{api_id}/pages/{page_id}       update (and reorder)
    DELETE /api/apis/{api_id}/pages/{page_id}       delete

The fixed sub-paths are declared before /{page_id} so they are matched first.
"""

import logging
from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Response
from sqlalchemy.ext.asyncio import AsyncSession

from docshelf.database import get_db_session
from docshelf.schemas.page import (
    CompactResponse,
    ErrorResponse,
    MaxPositionResponse,
    NewPageRequest,
    PageListItem,
    PageResponse,
    UpdatePageRequest,
)
from docshelf.services.page_service import page_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/apis/{api_id}/pages", tags=["Pages"])

ApiId = Annotated[str, Path(min_length=1, max_length=64, description="Owning API identifier")]


@router.get(
    "",
    response_model=List[PageListItem],
    responses={500: {"description": "Server error", "model": ErrorResponse}},
    summary="List the pages of an API",
    description="Returns the pages of an API ordered by position (0 first).",
)
async def list_pages(
    response: Response,
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> List[PageListItem]:
    pages = await page_service.list_pages(db=db, api_id=api_id)
    response.headers["X-Total-Count"] = str(len(pages))
    return pages


@router.post(
    "",
    status_code=201,
    response_model=PageResponse,
    responses={
        400: {"description": "Invalid position or name", "model": ErrorResponse},
        409: {"description": "Conflicting page or concurrent reorder", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Create a page",
    description=(
        "Creates a page for the API. Without a position the page is appended; "
        "with one, the pages from that position on shift down by one."
    ),
)
async def create_page(
    body: NewPageRequest,
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> PageResponse:
    return await page_service.create_page(db=db, api_id=api_id, new_page=body)


@router.get(
    "/max-position",
    response_model=MaxPositionResponse,
    summary="Highest page position of an API",
)
async def find_max_position(
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> MaxPositionResponse:
    return await page_service.find_max_position(db=db, api_id=api_id)


@router.post(
    "/compact",
    response_model=CompactResponse,
    responses={409: {"description": "Concurrent reorder", "model": ErrorResponse}},
    summary="Renumber the pages of an API to 0..n-1",
    description=(
        "Closes the position gaps left by deleted pages or by an aborted "
        "reorder, keeping the current relative order."
    ),
)
async def compact_pages(
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> CompactResponse:
    return await page_service.compact_pages(db=db, api_id=api_id)


@router.get(
    "/{page_id}",
    response_model=PageResponse,
    responses={404: {"description": "Page not found", "model": ErrorResponse}},
    summary="Get a page",
)
async def get_page(
    page_id: UUID,
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> PageResponse:
    return await page_service.get_page(db=db, api_id=api_id, page_id=page_id)


@router.put(
    "/{page_id}",
    response_model=PageResponse,
    responses={
        400: {"description": "Position out of range", "model": ErrorResponse},
        404: {"description": "Page not found", "model": ErrorResponse},
        409: {"description": "Concurrent reorder", "model": ErrorResponse},
        500: {"description": "Reorder aborted; nothing saved", "model": ErrorResponse},
    },
    summary="Update a page",
    description=(
        "Replaces name, content, contributor, publication flag and position. "
        "A new position moves the page and renumbers the pages in between."
    ),
)
async def update_page(
    page_id: UUID,
    body: UpdatePageRequest,
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> PageResponse:
    return await page_service.update_page(db=db, api_id=api_id, page_id=page_id, update=body)


@router.delete(
    "/{page_id}",
    status_code=204,
    responses={404: {"description": "Page not found", "model": ErrorResponse}},
    summary="Delete a page",
    description="Deletes a page. Remaining pages keep their positions.",
)
async def delete_page(
    page_id: UUID,
    api_id: ApiId,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await page_service.delete_page(db=db, api_id=api_id, page_id=page_id)
    return Response(status_code=204)
