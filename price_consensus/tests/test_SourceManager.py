"""Unit tests for SourceManager."""

from unittest.mock import patch

import pytest
from conftest import StubFetcher, make_manager

from price_consensus.src.CircuitBreaker import BreakerState
from price_consensus.src.SourceManager import BreakerConfig, SourceManager
from price_consensus.src.types import AssetType, FailureKind

TIME = "price_consensus.src.CircuitBreaker.time.time"


class TestSourceManagerInit:
    """Test SourceManager initialization and registration."""

    def test_init_empty(self) -> None:
        """A new manager tracks no sources."""
        manager = SourceManager()
        assert manager.sources == []
        assert manager.get_all_status() == {}
        assert manager.fetch_timeout == 5.0

    def test_invalid_fetch_timeout(self) -> None:
        """fetch_timeout <= 0 should raise ValueError."""
        with pytest.raises(ValueError, match="fetch_timeout must be positive"):
            SourceManager(fetch_timeout=0)

    def test_register_keeps_order(self) -> None:
        """Sources are listed in registration order."""
        manager = make_manager(StubFetcher("b", 1.0), StubFetcher("a", 1.0))
        assert manager.sources == ["b", "a"]

    def test_duplicate_registration(self) -> None:
        """Registering the same name twice should raise ValueError."""
        manager = make_manager(StubFetcher("a", 1.0))
        with pytest.raises(ValueError, match="Source 'a' is already registered"):
            manager.register(StubFetcher("a", 2.0))

    def test_default_breaker_from_fetcher(self) -> None:
        """Breakers use the fetcher's own thresholds unless overridden."""
        fetcher = StubFetcher("a", 1.0)
        fetcher.failure_threshold = 7
        fetcher.breaker_timeout = 90.0
        manager = make_manager(fetcher)

        breaker = manager.get_breaker("a")
        assert breaker.failure_threshold == 7
        assert breaker.timeout == 90.0

    def test_breaker_override(self) -> None:
        """An explicit BreakerConfig replaces the fetcher defaults."""
        manager = make_manager(StubFetcher("a", 1.0), config=BreakerConfig(2, 1, 10.0))

        breaker = manager.get_breaker("a")
        assert breaker.failure_threshold == 2
        assert breaker.success_threshold == 1
        assert breaker.timeout == 10.0

    def test_sources_for_asset_type(self) -> None:
        """Only fetchers covering the asset class are selected."""
        manager = make_manager(
            StubFetcher("crypto_only", 1.0),
            StubFetcher("stocks", 1.0, asset_types=frozenset({AssetType.EQUITY})),
            StubFetcher(
                "both", 1.0, asset_types=frozenset({AssetType.EQUITY, AssetType.FOREX})
            ),
        )

        assert manager.sources_for(AssetType.CRYPTO) == ["crypto_only"]
        assert manager.sources_for(AssetType.EQUITY) == ["stocks", "both"]
        assert manager.sources_for(AssetType.FOREX) == ["both"]

    def test_remove_source(self) -> None:
        """Removed sources are no longer tracked."""
        manager = make_manager(StubFetcher("a", 1.0), StubFetcher("b", 1.0))
        manager.remove_source("a")

        assert manager.sources == ["b"]
        assert manager.get_source_status("a") is None

    def test_remove_unknown_source(self) -> None:
        """Removing an unknown source should not raise."""
        manager = make_manager(StubFetcher("a", 1.0))
        manager.remove_source("nonexistent")
        assert manager.sources == ["a"]


class TestSourceManagerFetch:
    """Test fetch() outcome mapping."""

    @pytest.mark.asyncio
    async def test_successful_fetch(self) -> None:
        """A successful quote is passed through and recorded."""
        manager = make_manager(StubFetcher("a", 100.0))
        result = await manager.fetch("a", "btc")

        assert result.success
        assert result.quote.price == 100.0
        assert manager.get_source_status("a").total_successes == 1

    @pytest.mark.asyncio
    async def test_unknown_source(self) -> None:
        """Unknown sources come back as not configured."""
        manager = SourceManager()
        result = await manager.fetch("missing", "btc")

        assert result.failure is FailureKind.NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self) -> None:
        """A fetcher exceeding fetch_timeout is recorded as a timeout."""
        manager = make_manager(StubFetcher("slow", 100.0, delay=1.0), fetch_timeout=0.05)
        result = await manager.fetch("slow", "btc")

        assert result.failure is FailureKind.TIMEOUT
        status = manager.get_source_status("slow")
        assert status.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_source_fault_counts_as_failure(self) -> None:
        """HTTP errors returned by the fetcher are recorded by the breaker."""
        manager = make_manager(StubFetcher("a", failure=FailureKind.HTTP_ERROR))
        result = await manager.fetch("a", "btc")

        assert result.failure is FailureKind.HTTP_ERROR
        assert manager.get_source_status("a").total_failures == 1

    @pytest.mark.asyncio
    async def test_no_data_not_counted(self) -> None:
        """An unknown symbol says nothing about the source's health."""
        manager = make_manager(StubFetcher("a", failure=FailureKind.NO_DATA))
        result = await manager.fetch("a", "btc")

        assert result.failure is FailureKind.NO_DATA
        status = manager.get_source_status("a")
        assert status.total_failures == 0
        assert status.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_unexpected_exception_contained(self) -> None:
        """A raising fetcher becomes a network failure, not an exception."""
        manager = make_manager(StubFetcher("a", raises=RuntimeError("bug")))
        result = await manager.fetch("a", "btc")

        assert result.failure is FailureKind.NETWORK
        assert manager.get_source_status("a").total_failures == 1


class TestSourceManagerBreaker:
    """Test breaker integration."""

    @pytest.mark.asyncio
    async def test_open_breaker_skips_fetcher(self) -> None:
        """After five failures the sixth call is rejected without a request."""
        fetcher = StubFetcher("a", failure=FailureKind.NETWORK)
        manager = make_manager(fetcher, config=BreakerConfig(5, 2, 30.0))

        with patch(TIME, return_value=1000.0):
            for _ in range(5):
                await manager.fetch("a", "btc")
            assert manager.get_source_status("a").state is BreakerState.OPEN

            result = await manager.fetch("a", "btc")

        assert result.failure is FailureKind.BREAKER_OPEN
        assert fetcher.calls == 5
        assert manager.get_source_status("a").total_rejections == 1

    @pytest.mark.asyncio
    async def test_trial_call_after_timeout(self) -> None:
        """After the timeout one trial call reaches the fetcher again."""
        fetcher = StubFetcher("a", failure=FailureKind.NETWORK)
        manager = make_manager(fetcher, config=BreakerConfig(2, 1, 30.0))

        with patch(TIME) as mock_time:
            mock_time.return_value = 1000.0
            await manager.fetch("a", "btc")
            await manager.fetch("a", "btc")

            fetcher.failure = None
            fetcher.price = 100.0
            mock_time.return_value = 1031.0
            result = await manager.fetch("a", "btc")

        assert result.success
        assert fetcher.calls == 3
        assert manager.get_source_status("a").state is BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self) -> None:
        """One source failing does not affect another."""
        bad = StubFetcher("bad", failure=FailureKind.NETWORK)
        good = StubFetcher("good", 100.0)
        manager = make_manager(bad, good, config=BreakerConfig(1, 1, 30.0))

        await manager.fetch("bad", "btc")
        result = await manager.fetch("good", "btc")

        assert result.success
        assert manager.get_source_status("bad").state is BreakerState.OPEN
        assert manager.get_source_status("good").state is BreakerState.CLOSED


class TestSourceManagerStatus:
    """Test status queries and resets."""

    @pytest.mark.asyncio
    async def test_reset_source(self) -> None:
        """reset_source closes one breaker."""
        manager = make_manager(
            StubFetcher("a", failure=FailureKind.NETWORK),
            StubFetcher("b", failure=FailureKind.NETWORK),
            config=BreakerConfig(1, 1, 30.0),
        )
        await manager.fetch("a", "btc")
        await manager.fetch("b", "btc")

        manager.reset_source("a")

        assert manager.get_source_status("a").state is BreakerState.CLOSED
        assert manager.get_source_status("b").state is BreakerState.OPEN

    @pytest.mark.asyncio
    async def test_reset_all(self) -> None:
        """reset_all closes every breaker."""
        manager = make_manager(
            StubFetcher("a", failure=FailureKind.NETWORK),
            StubFetcher("b", failure=FailureKind.NETWORK),
            config=BreakerConfig(1, 1, 30.0),
        )
        await manager.fetch("a", "btc")
        await manager.fetch("b", "btc")

        manager.reset_all()

        for status in manager.get_all_status().values():
            assert status.state is BreakerState.CLOSED

    def test_reset_unknown_source(self) -> None:
        """Resetting an unknown source should not raise."""
        manager = make_manager(StubFetcher("a", 1.0))
        manager.reset_source("nonexistent")

    def test_get_all_status_returns_copies(self) -> None:
        """Modifying returned status should not affect internal state."""
        manager = make_manager(StubFetcher("a", 1.0))
        all_status = manager.get_all_status()
        all_status["a"].consecutive_failures = 999

        assert manager.get_source_status("a").consecutive_failures == 0
