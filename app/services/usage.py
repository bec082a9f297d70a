"""
Usage Recorder - Best-effort usage and cost events.

Writes one api_usage_logs row per terminal pipeline outcome and bumps the
matching Prometheus counter. Recording never raises: a failure or timeout is
logged and dropped.
"""

import asyncio
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ApiUsageLog
from app.models.domain import MetricEvent
from app.observability.logging import get_logger
from app.observability.metrics import metrics

logger = get_logger(__name__)


class UsageRecorder:
    """Persists MetricEvents with a bounded wait."""

    def __init__(
        self, session_factory: Callable[[], AsyncSession], timeout_seconds: float = 2.0
    ) -> None:
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    async def record(self, event: MetricEvent) -> None:
        """Record the event. Swallows every error."""
        outcome = "success" if event.success else (event.error_type or "UnexpectedError")
        try:
            metrics.record_generation(event.endpoint, outcome)
            await asyncio.wait_for(self._write(event), timeout=self.timeout_seconds)
        except Exception as e:
            logger.warning(
                "usage_record_failed",
                endpoint=event.endpoint,
                error_type=type(e).__name__,
                error=str(e),
            )

    async def _write(self, event: MetricEvent) -> None:
        async with self._session_factory() as session:
            session.add(
                ApiUsageLog(
                    user_id=event.user_id,
                    endpoint=event.endpoint,
                    model=event.model,
                    success=event.success,
                    error_message=event.error_message,
                    latency_ms=event.latency_ms,
                    input_bytes=event.input_bytes,
                    output_bytes=event.output_bytes,
                    credits_charged=event.credits_charged,
                    estimated_cost_usd=event.estimated_cost_usd,
                )
            )
            await session.commit()
