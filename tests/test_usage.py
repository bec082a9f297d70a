"""
Tests for UsageRecorder.
"""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

from app.db.models import ApiUsageLog
from app.models.domain import MetricEvent
from app.observability.metrics import metrics
from app.services.usage import UsageRecorder
from conftest import make_session_factory


def event(
    success: bool = True, error_message: str | None = None, error_type: str | None = None
) -> MetricEvent:
    return MetricEvent(
        endpoint="generate",
        model="gemini-2.5-flash-image",
        success=success,
        latency_ms=1200,
        user_id=uuid4(),
        error_message=error_message,
        error_type=error_type,
        input_bytes=2048,
        output_bytes=1024,
        credits_charged=1 if success else 0,
    )


class TestUsageRecorder:
    async def test_writes_usage_row(self, db_session: AsyncMock) -> None:
        recorder = UsageRecorder(make_session_factory(db_session))

        await recorder.record(event())

        row = db_session.add.call_args[0][0]
        assert isinstance(row, ApiUsageLog)
        assert row.endpoint == "generate"
        assert row.success is True
        assert row.credits_charged == 1
        db_session.commit.assert_awaited_once()

    async def test_failed_event(self, db_session: AsyncMock) -> None:
        recorder = UsageRecorder(make_session_factory(db_session))

        await recorder.record(event(success=False, error_message="Rate limit"))

        row = db_session.add.call_args[0][0]
        assert row.success is False
        assert row.error_message == "Rate limit"

    async def test_write_failure_swallowed(self, db_session: AsyncMock) -> None:
        db_session.commit = AsyncMock(side_effect=ConnectionError("database down"))
        recorder = UsageRecorder(make_session_factory(db_session))

        await recorder.record(event())

    async def test_slow_write_abandoned(self, db_session: AsyncMock) -> None:
        async def slow_commit() -> None:
            await asyncio.sleep(1)

        db_session.commit = AsyncMock(side_effect=slow_commit)
        recorder = UsageRecorder(make_session_factory(db_session), timeout_seconds=0.01)

        await recorder.record(event())

    async def test_outcome_label_is_error_type_not_message(self, db_session: AsyncMock) -> None:
        recorder = UsageRecorder(make_session_factory(db_session))
        counter = metrics.generations_total

        for balance in (3, 7, 11):
            await recorder.record(
                event(
                    success=False,
                    error_message=f"Insufficient credits. Balance: {balance}, Required: 50",
                    error_type="InsufficientCreditsError",
                )
            )

        outcomes = {
            sample.labels["outcome"]
            for metric in counter.collect()
            for sample in metric.samples
            if sample.labels.get("endpoint") == "generate"
        }
        assert "InsufficientCreditsError" in outcomes
        assert not any("Balance" in outcome for outcome in outcomes)
