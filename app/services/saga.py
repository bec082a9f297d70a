"""
Compensation - Undo steps registered as a request makes progress.

A request registers one compensation per side effect (credit reservation,
each stored artifact). On failure, run() executes every registered step once,
in reverse order. A step that raises is logged and counted; the remaining
steps still run and the original error is never replaced.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from app.observability.logging import get_logger
from app.observability.metrics import metrics

logger = get_logger(__name__)

CompensationAction = Callable[[], Awaitable[None]]


@dataclass
class _Step:
    name: str
    action: CompensationAction
    done: bool = False


@dataclass
class Compensation:
    """Ordered set of undo actions for one request."""

    request_id: str
    _steps: list[_Step] = field(default_factory=list)

    def register(self, name: str, action: CompensationAction) -> None:
        """Add an undo action. Steps run in reverse registration order."""
        self._steps.append(_Step(name=name, action=action))

    def discard(self) -> None:
        """Forget all steps once the request has committed its final write."""
        self._steps.clear()

    @property
    def pending(self) -> list[str]:
        """Names of steps not yet executed."""
        return [step.name for step in self._steps if not step.done]

    async def run(self, reason: str) -> list[str]:
        """
        Execute every pending step at most once.

        Returns the names of steps that failed.
        """
        failed: list[str] = []
        for step in reversed(self._steps):
            if step.done:
                continue
            step.done = True
            try:
                await step.action()
            except Exception as e:
                failed.append(step.name)
                metrics.record_compensation_failure(step.name)
                logger.error(
                    "compensation_step_failed",
                    request_id=self.request_id,
                    step=step.name,
                    reason=reason,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        if self._steps:
            logger.info(
                "compensation_completed",
                request_id=self.request_id,
                reason=reason,
                steps=len(self._steps),
                failed=failed,
            )
        return failed
