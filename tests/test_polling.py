"""
Tests for the polling orchestrator and its circuit breaker.
"""
from unittest.mock import ANY, MagicMock

import pytest

from asichain_sdk.config import Settings
from asichain_sdk.confirmation import ConfirmationResolver
from asichain_sdk.ledger import MemoryStore, PendingLedger
from asichain_sdk.models import CompletedResult, ErroredResult, PendingResult, PendingTransactionEntry
from asichain_sdk.node import IndexerClient, IndexerUnavailable, NetworkError, NodeClient
from asichain_sdk.node.exceptions import NodeTimeoutError
from asichain_sdk.polling import CircuitBreaker, CircuitBreakerState, PollingOrchestrator, PollingState
from conftest import INDEXER_URL

NOW_MS = 1_700_000_000_000
HOUR_MS = 3600 * 1000


def make_entry(deploy_id, submitted_at=NOW_MS, network_id="testnet"):
    return PendingTransactionEntry(
        deploy_id=deploy_id,
        from_address="1111From",
        to_address="1111To",
        amount=100,
        submitted_at=submitted_at,
        owner_account_id="acct-1",
        estimated_fee=10,
        network_id=network_id,
    )


def transport_failure():
    return IndexerUnavailable("connection refused", transport=NetworkError(INDEXER_URL))


@pytest.fixture
def ledger():
    return PendingLedger(MemoryStore(), clock=lambda: NOW_MS)


@pytest.fixture
def indexer():
    indexer = MagicMock(spec=IndexerClient)
    indexer.configured = True
    indexer.probe.return_value = None
    return indexer


@pytest.fixture
def resolver():
    resolver = MagicMock(spec=ConfirmationResolver)
    resolver.resolve.side_effect = lambda deploy_id, max_attempts, blocks: PendingResult(deploy_id=deploy_id)
    return resolver


@pytest.fixture
def callbacks():
    return {"resolved": MagicMock(), "refresh": MagicMock(), "stopped": MagicMock()}


@pytest.fixture
def orchestrator(ledger, resolver, indexer, callbacks):
    orchestrator = PollingOrchestrator(
        ledger,
        resolver,
        indexer,
        "testnet",
        interval=3600,
        on_resolved=callbacks["resolved"],
        on_refresh=callbacks["refresh"],
        on_stopped=callbacks["stopped"],
    )
    yield orchestrator
    orchestrator.stop()


@pytest.fixture
def polling(orchestrator):
    """An orchestrator in the polling state whose ticks the test drives itself"""
    orchestrator._state = PollingState.POLLING
    return orchestrator


class TestCircuitBreaker:

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker("x", failure_threshold=0)

    def test_opens_at_threshold(self):
        breaker = CircuitBreaker("x", failure_threshold=3)

        assert not breaker.record_failure()
        assert not breaker.record_failure()
        assert breaker.record_failure()
        assert breaker.is_open
        # already open, does not trip again
        assert not breaker.record_failure()

    def test_success_resets_count(self):
        breaker = CircuitBreaker("x", failure_threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()

        assert breaker.failure_count == 0
        assert not breaker.record_failure()

    def test_stays_open_until_reset(self):
        breaker = CircuitBreaker("x", failure_threshold=1)
        breaker.record_failure()
        breaker.record_success()
        assert breaker.is_open

        breaker.reset()
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0


class TestTick:

    def test_resolved_entries_are_evicted_before_refresh(self, orchestrator, ledger, resolver, callbacks):
        ledger.record(make_entry("d1"))
        resolver.resolve.side_effect = None
        resolver.resolve.return_value = CompletedResult(deploy_id="d1", block_number=5)

        seen = []
        callbacks["resolved"].side_effect = lambda entry, result: seen.append(("resolved", ledger.get("d1")))
        callbacks["refresh"].side_effect = lambda touched: seen.append(("refresh", ledger.get("d1")))

        resolved = orchestrator.tick()

        assert [(e.deploy_id, r.status) for e, r in resolved] == [("d1", "completed")]
        assert seen == [("resolved", None), ("refresh", None)]
        resolver.resolve.assert_called_once_with("d1", max_attempts=1, blocks=ANY)

    def test_errored_entries_are_evicted(self, orchestrator, ledger, resolver, callbacks):
        ledger.record(make_entry("d1"))
        resolver.resolve.side_effect = None
        resolver.resolve.return_value = ErroredResult(deploy_id="d1", reason="out of phlo")

        orchestrator.tick()

        assert ledger.get("d1") is None
        entry, result = callbacks["resolved"].call_args[0]
        assert result.reason == "out of phlo"

    def test_pending_entries_stay(self, orchestrator, ledger, callbacks):
        ledger.record(make_entry("d1"))

        assert orchestrator.tick() == []
        assert ledger.get("d1") is not None
        callbacks["refresh"].assert_not_called()

    def test_resolver_exception_leaves_entry(self, orchestrator, ledger, resolver):
        ledger.record(make_entry("d1"))
        ledger.record(make_entry("d2", submitted_at=NOW_MS + 1))
        resolver.resolve.side_effect = lambda deploy_id, max_attempts, blocks: (
            CompletedResult(deploy_id=deploy_id) if deploy_id == "d2" else 1 / 0
        )

        resolved = orchestrator.tick()

        assert [e.deploy_id for e, _ in resolved] == ["d2"]
        assert ledger.get("d1") is not None

    def test_expired_entries_are_refreshed(self, orchestrator, ledger, resolver, callbacks):
        ledger.record(make_entry("old", submitted_at=NOW_MS - 25 * HOUR_MS))

        orchestrator.tick()

        resolver.resolve.assert_not_called()
        touched = callbacks["refresh"].call_args[0][0]
        assert [e.deploy_id for e in touched] == ["old"]

    def test_other_network_entries_are_ignored(self, orchestrator, ledger, resolver):
        ledger.record(make_entry("elsewhere", network_id="mainnet"))
        orchestrator.tick()
        resolver.resolve.assert_not_called()

    def test_session_guard_skips_tick(self, ledger, resolver, indexer):
        ledger.record(make_entry("d1"))
        orchestrator = PollingOrchestrator(ledger, resolver, indexer, "testnet", session_guard=lambda: False)

        assert orchestrator.tick() == []
        indexer.probe.assert_not_called()
        resolver.resolve.assert_not_called()

    def test_no_indexer_skips_probe(self, orchestrator, ledger, indexer, resolver):
        indexer.configured = False
        ledger.record(make_entry("d1"))

        orchestrator.tick()

        indexer.probe.assert_not_called()
        resolver.resolve.assert_called_once()

    def test_transport_failure_skips_resolution(self, orchestrator, ledger, indexer, resolver):
        ledger.record(make_entry("d1"))
        indexer.probe.side_effect = transport_failure()

        assert orchestrator.tick() == []
        resolver.resolve.assert_not_called()
        assert orchestrator.breaker.failure_count == 1

    def test_block_fallback_is_fetched_once_per_tick(self, ledger, indexer):
        node = MagicMock(spec=NodeClient)
        node.get_blocks.return_value = [
            {"blockNumber": 9, "blockHash": "ab", "deploys": [{"sig": "d2", "cost": 10}]},
        ]
        indexer.find_deployment.return_value = None
        resolver = ConfirmationResolver(node, indexer, settings=Settings())
        orchestrator = PollingOrchestrator(ledger, resolver, indexer, "testnet", interval=3600)
        for i, deploy_id in enumerate(["d1", "d2", "d3"]):
            ledger.record(make_entry(deploy_id, submitted_at=NOW_MS + i))

        resolved = orchestrator.tick()

        node.get_blocks.assert_called_once_with(10)
        assert indexer.find_deployment.call_count == 3
        assert [(e.deploy_id, r.source) for e, r in resolved] == [("d2", "blocks")]
        assert [e.deploy_id for e in ledger.list_entries()] == ["d1", "d3"]


class TestCircuitBreakerIntegration:

    def test_three_transport_failures_trip(self, polling, indexer, callbacks):
        indexer.probe.side_effect = transport_failure()

        polling.tick()
        polling.tick()
        assert polling.state != PollingState.TRIPPED
        polling.tick()

        assert polling.state == PollingState.TRIPPED
        callbacks["stopped"].assert_called_once_with("circuit_breaker")

    def test_timeouts_count_as_transport_failures(self, polling, indexer):
        indexer.probe.side_effect = IndexerUnavailable(
            "request timed out", transport=NodeTimeoutError(INDEXER_URL)
        )
        for _ in range(3):
            polling.tick()
        assert polling.state == PollingState.TRIPPED

    def test_success_between_failures_resets_count(self, polling, indexer):
        indexer.probe.side_effect = [transport_failure(), transport_failure(), None,
                                     transport_failure(), transport_failure()]
        for _ in range(5):
            polling.tick()

        assert polling.state != PollingState.TRIPPED
        assert polling.breaker.failure_count == 2

    def test_query_errors_do_not_trip(self, polling, ledger, indexer, resolver):
        """An indexer that answers with an error is reachable"""
        ledger.record(make_entry("d1"))
        indexer.probe.side_effect = IndexerUnavailable("GraphQL query error: boom")

        for _ in range(5):
            polling.tick()

        assert polling.state != PollingState.TRIPPED
        assert resolver.resolve.call_count == 5

    def test_idle_orchestrator_counts_but_does_not_trip(self, orchestrator, indexer, callbacks):
        indexer.probe.side_effect = transport_failure()
        for _ in range(3):
            orchestrator.tick()

        assert orchestrator.state == PollingState.IDLE
        assert orchestrator.breaker.is_open
        callbacks["stopped"].assert_not_called()

        indexer.probe.side_effect = None
        orchestrator.start()
        assert not orchestrator.breaker.is_open

    def test_start_resets_tripped_breaker(self, polling, indexer):
        indexer.probe.side_effect = transport_failure()
        for _ in range(3):
            polling.tick()
        assert polling.state == PollingState.TRIPPED

        indexer.probe.side_effect = None
        polling.start()

        assert polling.state == PollingState.POLLING
        assert polling.breaker.failure_count == 0
        assert not polling.breaker.is_open


class TestLifecycle:

    def test_start_is_idempotent(self, orchestrator):
        orchestrator.start()
        thread = orchestrator._thread
        orchestrator.start()

        assert orchestrator._thread is thread
        assert orchestrator.is_active

    def test_first_tick_runs_immediately(self, orchestrator, indexer):
        orchestrator.start()
        orchestrator._thread.join(timeout=0.5)
        indexer.probe.assert_called()

    def test_stop_is_idempotent(self, orchestrator, callbacks):
        orchestrator.stop()
        callbacks["stopped"].assert_not_called()

        orchestrator.start()
        orchestrator.stop()
        orchestrator.stop()

        assert orchestrator.state == PollingState.IDLE
        callbacks["stopped"].assert_called_once_with("stopped")

    def test_status(self, orchestrator, ledger):
        ledger.record(make_entry("d1"))
        status = orchestrator.status()

        assert status == {
            "state": "idle",
            "network": "testnet",
            "interval": 3600,
            "failure_count": 0,
            "pending": 1,
        }
