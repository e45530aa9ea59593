"""Unit tests for QuoteCollector."""

import asyncio

import pytest
from conftest import StubFetcher, make_manager

from price_consensus.src.QuoteCollector import QuoteCollector
from price_consensus.src.types import FailureKind


class TestQuoteCollector:
    """Test concurrent collection."""

    def test_invalid_request_timeout(self) -> None:
        """request_timeout <= 0 should raise ValueError."""
        with pytest.raises(ValueError, match="request_timeout must be positive"):
            QuoteCollector(make_manager(), request_timeout=0)

    @pytest.mark.asyncio
    async def test_no_sources(self) -> None:
        """An empty source list gives an empty result."""
        collector = QuoteCollector(make_manager())
        result = await collector.collect("btc", [])

        assert result.quotes == []
        assert result.failures == {}

    @pytest.mark.asyncio
    async def test_collects_all_sources(self) -> None:
        """Every source is asked and quotes come back sorted by source."""
        fetchers = [StubFetcher("c", 102.0), StubFetcher("a", 100.0), StubFetcher("b", 101.0)]
        collector = QuoteCollector(make_manager(*fetchers))

        result = await collector.collect("btc", ["c", "a", "b"])

        assert [q.source for q in result.quotes] == ["a", "b", "c"]
        assert all(f.symbols == ["btc"] for f in fetchers)

    @pytest.mark.asyncio
    async def test_failures_recorded(self) -> None:
        """Sources without a quote are reported with their failure kind."""
        manager = make_manager(
            StubFetcher("ok", 100.0),
            StubFetcher("broken", failure=FailureKind.HTTP_ERROR),
            StubFetcher("unknown", None),
        )
        collector = QuoteCollector(manager)

        result = await collector.collect("btc", ["ok", "broken", "unknown"])

        assert [q.source for q in result.quotes] == ["ok"]
        assert result.failures == {
            "broken": FailureKind.HTTP_ERROR,
            "unknown": FailureKind.NO_DATA,
        }

    @pytest.mark.asyncio
    async def test_requests_run_concurrently(self) -> None:
        """Slow sources are waited for in parallel, not one after another."""
        manager = make_manager(
            StubFetcher("a", 100.0, delay=0.2),
            StubFetcher("b", 101.0, delay=0.2),
            StubFetcher("c", 102.0, delay=0.2),
        )
        collector = QuoteCollector(manager, request_timeout=0.5)

        result = await collector.collect("btc", ["a", "b", "c"])

        assert len(result.quotes) == 3
        assert result.failures == {}

    @pytest.mark.asyncio
    async def test_deadline_keeps_fast_quotes(self) -> None:
        """Sources still running at the deadline are dropped as timeouts."""
        manager = make_manager(
            StubFetcher("fast", 100.0),
            StubFetcher("slow", 101.0, delay=2.0),
            fetch_timeout=5.0,
        )
        collector = QuoteCollector(manager, request_timeout=0.1)

        result = await collector.collect("btc", ["fast", "slow"])

        assert [q.source for q in result.quotes] == ["fast"]
        assert result.failures == {"slow": FailureKind.TIMEOUT}

    @pytest.mark.asyncio
    async def test_deadline_cancellation_not_a_failure(self) -> None:
        """Cancelling a late source does not count against its breaker."""
        manager = make_manager(StubFetcher("slow", 101.0, delay=2.0), fetch_timeout=5.0)
        collector = QuoteCollector(manager, request_timeout=0.05)

        await collector.collect("btc", ["slow"])

        status = manager.get_source_status("slow")
        assert status.total_failures == 0
        assert status.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_caller_cancellation_cancels_sources(self) -> None:
        """Giving up on collect() leaves no source task running behind it."""
        manager = make_manager(
            StubFetcher("a", 100.0, delay=0.5),
            StubFetcher("b", 101.0, delay=0.5),
            fetch_timeout=5.0,
        )
        collector = QuoteCollector(manager, request_timeout=5.0)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(collector.collect("btc", ["a", "b"]), 0.05)

        others = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        assert others == []
        for source in ("a", "b"):
            status = manager.get_source_status(source)
            assert status.total_failures == 0
            assert status.total_successes == 0
