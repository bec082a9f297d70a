"""
Tests for Compensation.
"""

from app.services.saga import Compensation


class TestCompensation:
    async def test_runs_in_reverse_order(self) -> None:
        calls: list[str] = []
        saga = Compensation("req-1")

        for name in ("refund", "remove_generated", "remove_original"):

            async def action(name: str = name) -> None:
                calls.append(name)

            saga.register(name, action)

        failed = await saga.run(reason="StorageError")

        assert failed == []
        assert calls == ["remove_original", "remove_generated", "refund"]

    async def test_each_step_runs_at_most_once(self) -> None:
        calls: list[str] = []
        saga = Compensation("req-1")

        async def refund() -> None:
            calls.append("refund")

        saga.register("refund", refund)
        await saga.run(reason="first")
        await saga.run(reason="second")

        assert calls == ["refund"]
        assert saga.pending == []

    async def test_failing_step_does_not_stop_others(self) -> None:
        calls: list[str] = []
        saga = Compensation("req-1")

        async def refund() -> None:
            calls.append("refund")

        async def remove() -> None:
            raise ConnectionError("storage down")

        saga.register("refund", refund)
        saga.register("remove_generated", remove)

        failed = await saga.run(reason="PersistenceError")

        assert failed == ["remove_generated"]
        assert calls == ["refund"]

    async def test_discard_forgets_steps(self) -> None:
        calls: list[str] = []
        saga = Compensation("req-1")

        async def refund() -> None:
            calls.append("refund")

        saga.register("refund", refund)
        assert saga.pending == ["refund"]

        saga.discard()
        await saga.run(reason="late")

        assert calls == []
