"""
DocShelf Backend — Page Service Tests
=======================================

What:  Tests for PageService business logic against a real (in-memory) database.
How:   aiosqlite session from conftest; storage failures injected by patching
       PageRepository.

What we test:
    ✅ Create appends, or inserts at an explicit position
    ✅ Get / list, scoped to the owning API
    ✅ Update with and without a position change
    ✅ Out-of-range moves rejected with nothing saved
    ✅ A failed write mid-plan rolls everything back (PageReorderError)
    ✅ Delete leaves a gap; compact closes it
    ✅ Max position for empty and populated APIs
    ✅ Concurrent moves in one API stay dense
    ✅ Moves and inserts read positions committed by another worker
"""

import asyncio
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from docshelf.config import settings
from docshelf.exceptions import (
    InvalidReorderRequest,
    PageNotFoundError,
    PageReorderError,
    StorageError,
    ValidationError,
)
from docshelf.models.page import PageType
from docshelf.schemas.page import NewPageRequest, UpdatePageRequest
from docshelf.services.page_repository import PageRepository
from docshelf.services.page_service import (
    JSON_CONTENT_TYPE,
    YAML_CONTENT_TYPE,
    PageService,
    detect_content_type,
)


def bind_for(dialect: str) -> SimpleNamespace:
    return SimpleNamespace(dialect=SimpleNamespace(name=dialect))


def names_in_order(items):
    return [item.name for item in sorted(items, key=lambda i: i.position)]


def move_to(page, position: int, **changes) -> UpdatePageRequest:
    fields = {
        "name": page.name,
        "content": page.content,
        "last_contributor": page.last_contributor,
        "published": page.published,
        "position": position,
    }
    fields.update(changes)
    return UpdatePageRequest(**fields)


class TestDetectContentType:

    def test_json_body(self):
        assert detect_content_type('{"swagger": "2.0"}') == JSON_CONTENT_TYPE

    def test_yaml_body(self):
        assert detect_content_type("#%RAML 1.0\ntitle: Pets") == YAML_CONTENT_TYPE

    def test_missing_body_counts_as_json(self):
        assert detect_content_type(None) == JSON_CONTENT_TYPE

    def test_markdown_heading_is_not_json(self):
        # Only strict JSON qualifies; "#" lines are not read as comments
        assert detect_content_type("# Getting started") == YAML_CONTENT_TYPE


class TestCreatePage:

    @pytest.mark.asyncio
    async def test_pages_are_appended_in_creation_order(self, make_pages):
        created = await make_pages("petstore", 3)

        assert [p.position for p in created] == [0, 1, 2]
        assert all(p.api_id == "petstore" for p in created)
        assert all(p.published is False for p in created)
        assert created[0].type == PageType.MARKDOWN

    @pytest.mark.asyncio
    async def test_content_type_is_sniffed(self, db_session, page_service):
        swagger = await page_service.create_page(
            db_session,
            "petstore",
            NewPageRequest(name="Spec", type=PageType.SWAGGER, content='{"swagger": "2.0"}'),
        )
        raml = await page_service.create_page(
            db_session,
            "petstore",
            NewPageRequest(name="RAML", type=PageType.RAML, content="title: Pets"),
        )

        assert swagger.content_type == JSON_CONTENT_TYPE
        assert raml.content_type == YAML_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_explicit_position_shifts_later_pages(self, db_session, page_service, make_pages):
        await make_pages("petstore", 3)

        created = await page_service.create_page(
            db_session, "petstore", NewPageRequest(name="Intro", position=0)
        )

        assert created.position == 0
        pages = await page_service.list_pages(db_session, "petstore")
        assert [p.name for p in pages] == ["Intro", "P0", "P1", "P2"]
        assert [p.position for p in pages] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_explicit_next_position_appends(self, db_session, page_service, make_pages):
        await make_pages("petstore", 2)

        created = await page_service.create_page(
            db_session, "petstore", NewPageRequest(name="Last", position=2)
        )

        assert created.position == 2

    @pytest.mark.asyncio
    async def test_position_past_the_end_is_rejected(self, db_session, page_service, make_pages):
        await make_pages("petstore", 2)

        with pytest.raises(InvalidReorderRequest):
            await page_service.create_page(
                db_session, "petstore", NewPageRequest(name="Far", position=5)
            )

        pages = await page_service.list_pages(db_session, "petstore")
        assert [p.name for p in pages] == ["P0", "P1"]

    @pytest.mark.asyncio
    async def test_range_counts_pages_not_the_highest_position(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)
        await page_service.delete_page(db_session, "petstore", created[1].id)

        # Positions 0 and 2 are used: two pages, so a new one may go to 0..2
        with pytest.raises(InvalidReorderRequest, match=r"out of range \[0, 2\]") as exc_info:
            await page_service.create_page(
                db_session, "petstore", NewPageRequest(name="Far", position=3)
            )
        assert exc_info.value.context["max_position"] == 2

        last = await page_service.create_page(
            db_session, "petstore", NewPageRequest(name="Last", position=2)
        )
        pages = await page_service.list_pages(db_session, "petstore")
        assert [p.name for p in pages] == ["P0", "P2", "Last"]
        assert last.position == 3

    @pytest.mark.asyncio
    async def test_name_longer_than_limit_is_rejected(self, db_session, page_service):
        with patch.object(settings, "max_page_name_length", 5):
            with pytest.raises(ValidationError) as exc_info:
                await page_service.create_page(
                    db_session, "petstore", NewPageRequest(name="Too long a name")
                )

        assert exc_info.value.field == "name"


class TestReadPages:

    @pytest.mark.asyncio
    async def test_get_page(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 2)

        page = await page_service.get_page(db_session, "petstore", created[1].id)

        assert page.name == "P1"
        assert page.content == "# P1"
        assert page.content_type == YAML_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_unknown_page_raises_not_found(self, db_session, page_service):
        with pytest.raises(PageNotFoundError):
            await page_service.get_page(db_session, "petstore", uuid.uuid4())

    @pytest.mark.asyncio
    async def test_page_of_another_api_is_not_found(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 1)

        with pytest.raises(PageNotFoundError):
            await page_service.get_page(db_session, "bookstore", created[0].id)

    @pytest.mark.asyncio
    async def test_list_is_scoped_and_ordered(self, db_session, page_service, make_pages):
        await make_pages("petstore", 3)
        await make_pages("bookstore", 2, prefix="B")

        pets = await page_service.list_pages(db_session, "petstore")
        books = await page_service.list_pages(db_session, "bookstore")

        assert [p.name for p in pets] == ["P0", "P1", "P2"]
        assert [p.name for p in books] == ["B0", "B1"]
        assert await page_service.list_pages(db_session, "nothing") == []


class TestUpdatePage:

    @pytest.mark.asyncio
    async def test_update_without_move_keeps_siblings(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)

        updated = await page_service.update_page(
            db_session,
            "petstore",
            created[1].id,
            move_to(created[1], 1, name="Renamed", content="{}", published=True),
        )

        assert updated.name == "Renamed"
        assert updated.content_type == JSON_CONTENT_TYPE
        assert updated.published is True
        assert updated.type == PageType.MARKDOWN
        pages = await page_service.list_pages(db_session, "petstore")
        assert [p.name for p in pages] == ["P0", "Renamed", "P2"]

    @pytest.mark.asyncio
    async def test_move_last_to_second(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 4)

        updated = await page_service.update_page(
            db_session, "petstore", created[3].id, move_to(created[3], 1)
        )

        assert updated.position == 1
        pages = await page_service.list_pages(db_session, "petstore")
        assert [p.name for p in pages] == ["P0", "P3", "P1", "P2"]
        assert [p.position for p in pages] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_move_first_to_last(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)

        await page_service.update_page(db_session, "petstore", created[0].id, move_to(created[0], 2))

        pages = await page_service.list_pages(db_session, "petstore")
        assert names_in_order(pages) == ["P1", "P2", "P0"]

    @pytest.mark.asyncio
    async def test_move_leaves_other_apis_alone(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)
        await make_pages("bookstore", 3, prefix="B")

        await page_service.update_page(db_session, "petstore", created[2].id, move_to(created[2], 0))

        books = await page_service.list_pages(db_session, "bookstore")
        assert [(b.name, b.position) for b in books] == [("B0", 0), ("B1", 1), ("B2", 2)]

    @pytest.mark.asyncio
    async def test_out_of_range_move_saves_nothing(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)

        with pytest.raises(InvalidReorderRequest):
            await page_service.update_page(
                db_session,
                "petstore",
                created[0].id,
                move_to(created[0], 3, name="Changed"),
            )

        pages = await page_service.list_pages(db_session, "petstore")
        assert [(p.name, p.position) for p in pages] == [("P0", 0), ("P1", 1), ("P2", 2)]

    @pytest.mark.asyncio
    async def test_update_of_unknown_page_raises_not_found(self, db_session, page_service):
        request = UpdatePageRequest(name="Ghost", position=0)

        with pytest.raises(PageNotFoundError):
            await page_service.update_page(db_session, "petstore", uuid.uuid4(), request)

    @pytest.mark.asyncio
    async def test_failed_write_rolls_back_the_whole_plan(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 4)
        failing_update = AsyncMock(
            side_effect=[None, StorageError(context={"error_type": "OperationalError"})]
        )

        with patch.object(PageRepository, "update", new=failing_update):
            with pytest.raises(PageReorderError) as exc_info:
                await page_service.update_page(
                    db_session,
                    "petstore",
                    created[3].id,
                    move_to(created[3], 1, name="Moved"),
                )

        error = exc_info.value
        assert error.api_id == "petstore"
        assert error.page_id == str(created[2].id)
        assert error.applied == 1
        assert error.abandoned == 2
        assert error.context["cause"] == {"error_type": "OperationalError"}

        pages = await page_service.list_pages(db_session, "petstore")
        assert [(p.name, p.position) for p in pages] == [
            ("P0", 0),
            ("P1", 1),
            ("P2", 2),
            ("P3", 3),
        ]

    @pytest.mark.asyncio
    async def test_concurrent_moves_keep_positions_dense(self, session_factory, page_service, make_pages):
        created = await make_pages("petstore", 5)

        async def move(page, position):
            async with session_factory() as session:
                await page_service.update_page(session, "petstore", page.id, move_to(page, position))

        await asyncio.gather(move(created[0], 4), move(created[4], 0))

        async with session_factory() as session:
            pages = await page_service.list_pages(session, "petstore")
        assert sorted(p.position for p in pages) == [0, 1, 2, 3, 4]
        assert len(page_service.locks) == 0


class TestDeleteAndCompact:

    @pytest.mark.asyncio
    async def test_delete_leaves_a_gap(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)

        await page_service.delete_page(db_session, "petstore", created[1].id)

        pages = await page_service.list_pages(db_session, "petstore")
        assert [(p.name, p.position) for p in pages] == [("P0", 0), ("P2", 2)]

    @pytest.mark.asyncio
    async def test_delete_of_unknown_page_raises_not_found(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 1)

        with pytest.raises(PageNotFoundError):
            await page_service.delete_page(db_session, "petstore", uuid.uuid4())
        with pytest.raises(PageNotFoundError):
            await page_service.delete_page(db_session, "bookstore", created[0].id)

    @pytest.mark.asyncio
    async def test_compact_closes_gaps(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 4)
        await page_service.delete_page(db_session, "petstore", created[0].id)
        await page_service.delete_page(db_session, "petstore", created[2].id)

        result = await page_service.compact_pages(db_session, "petstore")

        assert result.moved == 2
        assert result.total == 2
        pages = await page_service.list_pages(db_session, "petstore")
        assert [(p.name, p.position) for p in pages] == [("P1", 0), ("P3", 1)]

    @pytest.mark.asyncio
    async def test_compact_of_dense_api_moves_nothing(self, db_session, page_service, make_pages):
        await make_pages("petstore", 3)

        result = await page_service.compact_pages(db_session, "petstore")

        assert result.moved == 0
        assert result.total == 3

    @pytest.mark.asyncio
    async def test_move_after_compact_uses_new_numbering(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 3)
        await page_service.delete_page(db_session, "petstore", created[0].id)
        await page_service.compact_pages(db_session, "petstore")
        last = await page_service.get_page(db_session, "petstore", created[2].id)

        await page_service.update_page(db_session, "petstore", last.id, move_to(last, 0))

        pages = await page_service.list_pages(db_session, "petstore")
        assert [(p.name, p.position) for p in pages] == [("P2", 0), ("P1", 1)]


class TestFindMaxPosition:

    @pytest.mark.asyncio
    async def test_empty_api(self, db_session, page_service):
        result = await page_service.find_max_position(db_session, "petstore")

        assert result.max_position is None
        assert result.next_position == 0

    @pytest.mark.asyncio
    async def test_populated_api(self, db_session, page_service, make_pages):
        await make_pages("petstore", 3)

        result = await page_service.find_max_position(db_session, "petstore")

        assert result.max_position == 2
        assert result.next_position == 3


class TestPageRepositoryErrors:
    """Driver errors surface as StorageError with a generic message."""

    @pytest.mark.asyncio
    async def test_query_failure_is_wrapped(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        repo = PageRepository(mock_db_session)

        with pytest.raises(StorageError) as exc_info:
            await repo.find_by_api("petstore")

        assert "db down" not in exc_info.value.message
        assert exc_info.value.context["error_type"] == "OperationalError"

    @pytest.mark.asyncio
    async def test_max_position_failure_is_wrapped(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))

        with pytest.raises(StorageError):
            await PageRepository(mock_db_session).find_max_position("petstore")


class TestPageRepositoryLocking:
    """Statements behind the cross-process guarantees."""

    @pytest.mark.asyncio
    async def test_partition_lock_only_on_postgresql(self, mock_db_session):
        mock_db_session.get_bind = MagicMock(return_value=bind_for("sqlite"))
        await PageRepository(mock_db_session).lock_partition("petstore")
        mock_db_session.execute.assert_not_awaited()

        mock_db_session.get_bind = MagicMock(return_value=bind_for("postgresql"))
        await PageRepository(mock_db_session).lock_partition("petstore")
        statement = mock_db_session.execute.await_args.args[0]
        assert "pg_advisory_xact_lock(hashtext(" in str(statement)

    @pytest.mark.asyncio
    async def test_locked_snapshot_refreshes_loaded_pages(self, mock_db_session):
        mock_db_session.execute.return_value = MagicMock()

        await PageRepository(mock_db_session).find_by_api("petstore", for_update=True)

        statement = mock_db_session.execute.await_args.args[0]
        assert statement.get_execution_options().get("populate_existing") is True


class TestSeveralWorkers:
    """
    Two services with separate lock registries and separate connections,
    the way two uvicorn workers share one database.
    """

    def setup_method(self):
        self.worker_a = PageService()
        self.worker_b = PageService()

    async def _seed(self, session_factory, count: int):
        async with session_factory() as session:
            return [
                await self.worker_a.create_page(session, "petstore", NewPageRequest(name=f"P{i}"))
                for i in range(count)
            ]

    @pytest.mark.asyncio
    async def test_move_sees_a_move_committed_elsewhere(self, file_session_factory):
        pages = await self._seed(file_session_factory, 5)

        async with file_session_factory() as session_a, file_session_factory() as session_b:
            # Worker A holds P3 in its session at position 3
            loaded = await self.worker_a.get_page(session_a, "petstore", pages[3].id)
            await session_a.commit()
            assert loaded.position == 3

            await self.worker_b.update_page(session_b, "petstore", pages[3].id, move_to(pages[3], 1))
            await self.worker_a.update_page(session_a, "petstore", pages[3].id, move_to(pages[3], 0))

        async with file_session_factory() as session:
            listed = await self.worker_a.list_pages(session, "petstore")
        assert [(p.name, p.position) for p in listed] == [
            ("P3", 0),
            ("P0", 1),
            ("P1", 2),
            ("P2", 3),
            ("P4", 4),
        ]

    @pytest.mark.asyncio
    async def test_insert_sees_a_move_committed_elsewhere(self, file_session_factory):
        pages = await self._seed(file_session_factory, 4)

        async with file_session_factory() as session_a, file_session_factory() as session_b:
            # Worker A holds every page in its session
            await self.worker_a.list_pages(session_a, "petstore")
            await session_a.commit()

            await self.worker_b.update_page(session_b, "petstore", pages[3].id, move_to(pages[3], 0))
            await self.worker_a.create_page(
                session_a, "petstore", NewPageRequest(name="New", position=1)
            )

        async with file_session_factory() as session:
            listed = await self.worker_a.list_pages(session, "petstore")
        assert [p.name for p in listed] == ["P3", "New", "P0", "P1", "P2"]
        assert [p.position for p in listed] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_every_write_takes_the_partition_lock(self, db_session, page_service, make_pages):
        created = await make_pages("petstore", 2)
        lock_partition = AsyncMock()

        with patch.object(PageRepository, "lock_partition", new=lock_partition):
            await page_service.create_page(db_session, "petstore", NewPageRequest(name="New"))
            await page_service.update_page(db_session, "petstore", created[0].id, move_to(created[0], 1))
            await page_service.delete_page(db_session, "petstore", created[1].id)
            await page_service.compact_pages(db_session, "petstore")

        assert lock_partition.await_count == 4
        lock_partition.assert_awaited_with("petstore")
