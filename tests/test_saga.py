"""
Tests for the saga runner.
"""
import pytest

from clinic_api.sales.saga import Saga


class TestSaga:

    @pytest.mark.asyncio
    async def test_runs_steps_in_order(self):
        calls = []

        async def step(name):
            calls.append(name)
            return name

        saga = Saga("test")
        saga.add_step("a", lambda: step("a")).add_step("b", lambda: step("b"))

        assert await saga.run() == ["a", "b"]
        assert calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failure_compensates_in_reverse_and_reraises(self):
        undone = []

        async def ok(name):
            return name

        async def undo(result):
            undone.append(result)

        async def boom():
            raise RuntimeError("stock ran out")

        saga = Saga("test")
        saga.add_step("a", lambda: ok("a"), undo)
        saga.add_step("b", lambda: ok("b"), undo)
        saga.add_step("c", boom, undo)

        with pytest.raises(RuntimeError, match="stock ran out"):
            await saga.run()

        # The failing step itself is not compensated
        assert undone == ["b", "a"]

    @pytest.mark.asyncio
    async def test_failing_compensation_does_not_stop_the_others(self):
        undone = []

        async def ok():
            return "done"

        async def undo_ok(result):
            undone.append("a")

        async def undo_broken(result):
            raise ValueError("backend down")

        async def boom():
            raise RuntimeError("failed")

        saga = Saga("test")
        saga.add_step("a", ok, undo_ok)
        saga.add_step("b", ok, undo_broken)
        saga.add_step("c", boom)

        with pytest.raises(RuntimeError):
            await saga.run()

        assert undone == ["a"]

    @pytest.mark.asyncio
    async def test_steps_without_compensation_are_skipped(self):
        undone = []

        async def ok():
            return 1

        async def undo(result):
            undone.append(result)

        async def boom():
            raise RuntimeError("failed")

        saga = Saga("test")
        saga.add_step("a", ok, undo)
        saga.add_step("b", ok)
        saga.add_step("c", boom)

        with pytest.raises(RuntimeError):
            await saga.run()

        assert undone == [1]
