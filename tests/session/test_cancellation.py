"""Tests for the completion single-flight protocol."""

import asyncio

import pytest

from llmsp.errors import CompletionCancelledError
from llmsp.session import CancellationToken, SingleFlight


def test_token_raises_once_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    assert token.cancelled
    with pytest.raises(CompletionCancelledError, match="context canceled"):
        token.raise_if_cancelled()


class TestSingleFlight:
    """Only the newest request survives a burst."""

    @pytest.mark.asyncio
    async def test_single_request_proceeds(self) -> None:
        flight = SingleFlight(debounce=0.01)
        token = await flight.begin()
        assert not token.cancelled
        assert flight.current is token

        await flight.finish(token)
        assert flight.current is None

    @pytest.mark.asyncio
    async def test_burst_only_last_proceeds(self) -> None:
        """R1..R5 arrive within the debounce window; only R5 continues."""
        flight = SingleFlight(debounce=0.05)

        async def request() -> str:
            try:
                await flight.begin()
            except CompletionCancelledError:
                return "cancelled"
            return "proceeded"

        tasks = []
        for _ in range(5):
            tasks.append(asyncio.create_task(request()))
            await asyncio.sleep(0)
        results = await asyncio.gather(*tasks)

        assert results == ["cancelled"] * 4 + ["proceeded"]

    @pytest.mark.asyncio
    async def test_newer_request_cancels_in_flight_token(self) -> None:
        """A request past its debounce is still cancelled by a newer one."""
        flight = SingleFlight(debounce=0.01)
        first = await flight.begin()
        second = await flight.begin()

        assert first.cancelled
        assert not second.cancelled
        with pytest.raises(CompletionCancelledError):
            first.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_finish_ignores_superseded_token(self) -> None:
        flight = SingleFlight(debounce=0.01)
        first = await flight.begin()
        second = await flight.begin()

        await flight.finish(first)
        assert flight.current is second
