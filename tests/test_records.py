"""
Tests for GenerationRecordRepository.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.db.models import Generation
from app.exceptions import PersistenceError
from app.models.api import GenerationMode, RecordStatus
from app.models.domain import GenerationRecordIntent
from app.services.records import GenerationRecordRepository
from conftest import make_result, make_session_factory


def intent(status: RecordStatus = RecordStatus.SUCCEEDED) -> GenerationRecordIntent:
    return GenerationRecordIntent(
        user_id=uuid4(),
        original_image_url="inline-upload",
        generated_image_url="user/1700000000000.png",
        prompt_used="TASK: Interior Redesign",
        generation_mode=GenerationMode.REDESIGN,
        is_compressed=False,
        status=status,
        request_id="req-1",
    )


def generation_row(**overrides: object) -> MagicMock:
    values: dict[str, object] = {
        "id": uuid4(),
        "user_id": uuid4(),
        "original_image_url": "https://storage.example.com/a.png",
        "generated_image_url": "models/veo/operations/1",
        "prompt_used": "drone",
        "generation_mode": GenerationMode.DRONE_TOUR.value,
        "is_compressed": False,
        "status": "pending",
        "request_id": "req-1",
        "result_uri": None,
        "error_message": None,
        "created_at": datetime.now(UTC),
    }
    values.update(overrides)
    return MagicMock(**values)


class TestCreate:
    async def test_create_succeeded_record(self, db_session: AsyncMock) -> None:
        repository = GenerationRecordRepository(make_session_factory(db_session))

        record = await repository.create(intent())

        row = db_session.add.call_args[0][0]
        assert isinstance(row, Generation)
        assert row.generation_mode == "Redesign"
        assert row.resolved_at is not None
        assert record.status == RecordStatus.SUCCEEDED
        db_session.commit.assert_awaited_once()

    async def test_pending_record_unresolved(self, db_session: AsyncMock) -> None:
        repository = GenerationRecordRepository(make_session_factory(db_session))

        await repository.create(intent(RecordStatus.PENDING))

        assert db_session.add.call_args[0][0].resolved_at is None

    async def test_database_failure(self, db_session: AsyncMock) -> None:
        db_session.commit = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down")))
        repository = GenerationRecordRepository(make_session_factory(db_session))

        with pytest.raises(PersistenceError) as exc_info:
            await repository.create(intent())

        assert exc_info.value.requires_refund is True
        assert exc_info.value.requires_cleanup is True


class TestQueries:
    async def test_find_by_operation(self, db_session: AsyncMock) -> None:
        row = generation_row()
        db_session.execute = AsyncMock(return_value=make_result(row))
        repository = GenerationRecordRepository(make_session_factory(db_session))

        record = await repository.find_by_operation("models/veo/operations/1")

        assert record is not None
        assert record.record_id == row.id
        assert record.status == RecordStatus.PENDING
        assert record.generation_mode == GenerationMode.DRONE_TOUR

    async def test_find_by_operation_missing(self, db_session: AsyncMock) -> None:
        repository = GenerationRecordRepository(make_session_factory(db_session))

        assert await repository.find_by_operation("unknown") is None


class TestResolve:
    async def test_pending_transition(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(uuid4()))
        repository = GenerationRecordRepository(make_session_factory(db_session))

        assert await repository.mark_failed(uuid4(), "Unsafe content") is True
        db_session.commit.assert_awaited_once()

    async def test_already_resolved(self, db_session: AsyncMock) -> None:
        repository = GenerationRecordRepository(make_session_factory(db_session))

        assert await repository.mark_succeeded(uuid4(), "https://files/v.mp4") is False
