"""
Generation Records - Persistence of the generations audit table.

NO DICTIONARIES - Rows are converted to GenerationRecordData on the way out.
"""

from collections.abc import Callable
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Generation, utc_now
from app.exceptions import PersistenceError
from app.models.api import GenerationMode, RecordStatus
from app.models.domain import GenerationRecordData, GenerationRecordIntent
from app.observability.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncSession]


class RecordStore(Protocol):
    """Generation record interface used by the orchestrator."""

    async def create(self, intent: GenerationRecordIntent) -> GenerationRecordData:
        ...

    async def find_by_operation(self, operation_name: str) -> GenerationRecordData | None:
        ...

    async def mark_succeeded(self, record_id: UUID, result_uri: str) -> bool:
        ...

    async def mark_failed(self, record_id: UUID, error_message: str) -> bool:
        ...


def _to_record_data(row: Generation) -> GenerationRecordData:
    return GenerationRecordData(
        record_id=row.id,
        user_id=row.user_id,
        original_image_url=row.original_image_url,
        generated_image_url=row.generated_image_url,
        prompt_used=row.prompt_used,
        generation_mode=GenerationMode(row.generation_mode),
        is_compressed=row.is_compressed,
        status=RecordStatus(row.status),
        request_id=row.request_id,
        result_uri=row.result_uri,
        error_message=row.error_message,
        created_at=row.created_at,
    )


class GenerationRecordRepository:
    """Postgres-backed generation records."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """Initialize repository with a session factory."""
        self._session_factory = session_factory

    async def create(self, intent: GenerationRecordIntent) -> GenerationRecordData:
        """Insert a generation row. Any database failure raises PersistenceError."""
        row = Generation(
            id=uuid4(),
            user_id=intent.user_id,
            property_id=intent.property_id,
            original_image_url=intent.original_image_url,
            generated_image_url=intent.generated_image_url,
            prompt_used=intent.prompt_used,
            generation_mode=intent.generation_mode.value,
            is_compressed=intent.is_compressed,
            status=intent.status,
            request_id=intent.request_id,
            resolved_at=None if intent.status == RecordStatus.PENDING else utc_now(),
            created_at=utc_now(),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "generation_record_failed",
                user_id=str(intent.user_id),
                request_id=intent.request_id,
                error=str(e),
            )
            raise PersistenceError(f"Failed to save generation: {type(e).__name__}") from e

        logger.info(
            "generation_recorded",
            record_id=str(row.id),
            user_id=str(intent.user_id),
            mode=intent.generation_mode.value,
            status=intent.status.value,
        )
        return _to_record_data(row)

    async def find_by_operation(self, operation_name: str) -> GenerationRecordData | None:
        """Video record whose stored token equals operation_name."""
        async with self._session_factory() as session:
            stmt = select(Generation).where(
                Generation.generation_mode == GenerationMode.DRONE_TOUR.value,
                Generation.generated_image_url == operation_name,
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
        return _to_record_data(row) if row is not None else None

    async def mark_succeeded(self, record_id: UUID, result_uri: str) -> bool:
        """pending -> succeeded. Returns False if another caller resolved it first."""
        return await self._resolve(
            record_id, RecordStatus.SUCCEEDED, result_uri=result_uri, error_message=None
        )

    async def mark_failed(self, record_id: UUID, error_message: str) -> bool:
        """pending -> failed. Returns False if another caller resolved it first."""
        return await self._resolve(
            record_id, RecordStatus.FAILED, result_uri=None, error_message=error_message
        )

    async def _resolve(
        self,
        record_id: UUID,
        status: RecordStatus,
        result_uri: str | None,
        error_message: str | None,
    ) -> bool:
        async with self._session_factory() as session:
            stmt = (
                update(Generation)
                .where(Generation.id == record_id, Generation.status == RecordStatus.PENDING)
                .values(
                    status=status,
                    result_uri=result_uri,
                    error_message=error_message,
                    resolved_at=utc_now(),
                )
                .returning(Generation.id)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            transitioned = result.scalar_one_or_none() is not None
            await session.commit()

        logger.info(
            "generation_resolved",
            record_id=str(record_id),
            status=status.value,
            transitioned=transitioned,
        )
        return transitioned
