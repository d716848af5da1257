"""
Background polling of pending transactions.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ._rate_limited_log import rate_limited_log
from .confirmation import ConfirmationResolver, RecentBlocks
from .ledger import PendingLedger
from .models import ConfirmationResult, PendingTransactionEntry
from .node.exceptions import IndexerUnavailable
from .node.indexer import IndexerClient
from .utils import short_id

logger = logging.getLogger(__name__)

MAX_RESOLVE_WORKERS = 8


class PollingState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    TRIPPED = "tripped"


class CircuitBreakerState(Enum):
    CLOSED = "CLOSED"  # Polling proceeds normally
    OPEN = "OPEN"  # Polling stopped until reset


class CircuitBreaker:
    """
    Counts consecutive transport failures and opens at the threshold.

    There is no automatic recovery: an open breaker stays open until
    :meth:`reset` is called.
    """

    def __init__(self, name: str, failure_threshold: int = 3):
        if not isinstance(failure_threshold, int) or failure_threshold <= 0:
            raise ValueError("Failure threshold must be a positive integer.")
        self.name = name
        self.failure_threshold = failure_threshold
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_open(self) -> bool:
        return self._state == CircuitBreakerState.OPEN

    def record_failure(self) -> bool:
        """Count a failure; returns True when this failure opened the breaker"""
        with self._lock:
            if self.is_open:
                return False
            self._failure_count += 1
            logger.warning(
                "Circuit breaker %s failure recorded (%d/%d)",
                self.name, self._failure_count, self.failure_threshold,
            )
            if self._failure_count >= self.failure_threshold:
                self._state = CircuitBreakerState.OPEN
                logger.warning("Circuit breaker %s tripped to %s", self.name, self._state.value)
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if not self.is_open:
                self._failure_count = 0

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0


class PollingOrchestrator:
    """
    Re-resolves pending ledger entries of one network on a fixed interval.

    Each tick runs, in order: session guard, one indexer probe, eviction of
    expired entries, resolution of every remaining entry, eviction of the
    resolved ones, and finally ``on_refresh`` with every entry that left the
    ledger. Three consecutive transport failures of the probe trip the
    circuit breaker and stop the timer; :meth:`start` resets it.
    """

    def __init__(
        self,
        ledger: PendingLedger,
        resolver: ConfirmationResolver,
        indexer: IndexerClient,
        network_id: str,
        interval: float = 15.0,
        max_pending_age_hours: float = 24.0,
        failure_threshold: int = 3,
        session_guard: Optional[Callable[[], bool]] = None,
        on_resolved: Optional[Callable[[PendingTransactionEntry, ConfirmationResult], None]] = None,
        on_refresh: Optional[Callable[[List[PendingTransactionEntry]], None]] = None,
        on_stopped: Optional[Callable[[str], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.resolver = resolver
        self.indexer = indexer
        self.network_id = network_id
        self.interval = interval
        self.max_pending_age_hours = max_pending_age_hours
        self.breaker = CircuitBreaker(f"indexer:{network_id}", failure_threshold)
        self.session_guard = session_guard or (lambda: True)
        self.on_resolved = on_resolved
        self.on_refresh = on_refresh
        self.on_stopped = on_stopped
        self.logger = logger or logging.getLogger(__name__)

        self._state = PollingState.IDLE
        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> PollingState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == PollingState.POLLING

    def start(self) -> None:
        """Start polling; a no-op while already polling. Resets a tripped breaker."""
        with self._lock:
            if self._state == PollingState.POLLING:
                self.logger.debug("Already polling, skipping start")
                return
            self.breaker.reset()
            self._state = PollingState.POLLING
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=f"asichain-poll-{self.network_id}",
                daemon=True,
            )
            self._thread.start()
        self.logger.info(f"Started transaction polling on {self.network_id} every {self.interval:g}s")

    def stop(self) -> None:
        """Stop polling; safe to call any number of times"""
        with self._lock:
            if self._state == PollingState.IDLE:
                return
            was_polling = self._state == PollingState.POLLING
            self._state = PollingState.IDLE
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval + 1)
        if was_polling:
            self.logger.info(f"Stopped transaction polling on {self.network_id}")
            self._notify_stopped("stopped")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                self.logger.exception("Unexpected error during polling tick")
            if stop_event.wait(self.interval):
                break

    def _trip(self) -> None:
        with self._lock:
            self._state = PollingState.TRIPPED
            self._stop_event.set()
            self._thread = None
        self.logger.warning(
            f"Indexer on {self.network_id} unreachable {self.breaker.failure_threshold} times in a row; "
            "polling disabled until restarted"
        )
        self._notify_stopped("circuit_breaker")

    def _notify_stopped(self, reason: str) -> None:
        if self.on_stopped is None:
            return
        try:
            self.on_stopped(reason)
        except Exception:
            self.logger.exception("polling stopped callback failed")

    def _probe(self) -> bool:
        """Returns False when the tick must be skipped"""
        if not self.indexer.configured:
            return True
        try:
            self.indexer.probe()
        except IndexerUnavailable as e:
            if not e.is_transport_failure:
                # Indexer answered; resolution falls back to blocks where needed
                self.logger.debug(f"Indexer probe returned an error: {e.reason}")
                self.breaker.record_success()
                return True
            rate_limited_log(
                f"Indexer on {self.network_id} not accessible ({e.transport.kind.value}): {e.reason}",
                logger_instance=self.logger,
            )
            # Ticks run by hand on an idle orchestrator only count failures
            if self.breaker.record_failure() and self._state == PollingState.POLLING:
                self._trip()
            return False
        self.breaker.record_success()
        return True

    def _resolve_one(self, entry: PendingTransactionEntry,
                     blocks: Optional[RecentBlocks]) -> Optional[ConfirmationResult]:
        try:
            return self.resolver.resolve(entry.deploy_id, max_attempts=1, blocks=blocks)
        except Exception:
            self.logger.exception(f"Resolving {short_id(entry.deploy_id)} failed")
            return None

    def tick(self) -> List[Tuple[PendingTransactionEntry, ConfirmationResult]]:
        """
        Run one polling pass now.

        Returns:
            The entries resolved in this pass with their results
        """
        with self._tick_lock:
            if not self.session_guard():
                self.logger.debug("No authenticated session or selected network, skipping tick")
                return []
            if not self._probe():
                return []

            touched: List[PendingTransactionEntry] = list(
                self.ledger.evict_expired(self.max_pending_age_hours)
            )

            entries = self.ledger.list_entries(network_id=self.network_id)
            resolved: List[Tuple[PendingTransactionEntry, ConfirmationResult]] = []
            if entries:
                # One block fetch per pass, shared by every entry that falls back to it
                blocks = self.resolver.recent_blocks()
                workers = min(MAX_RESOLVE_WORKERS, len(entries))
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asichain-resolve") as pool:
                    results = list(pool.map(lambda e: self._resolve_one(e, blocks), entries))
                for entry, result in zip(entries, results):
                    if result is not None and result.is_final:
                        resolved.append((entry, result))

            for entry, result in resolved:
                if self.ledger.evict(entry.deploy_id) is not None:
                    touched.append(entry)
                self.logger.info(f"Deploy {short_id(entry.deploy_id)} {result.status} ({result.source})")
                if self.on_resolved is not None:
                    try:
                        self.on_resolved(entry, result)
                    except Exception:
                        self.logger.exception("resolved callback failed")

            if touched and self.on_refresh is not None:
                try:
                    self.on_refresh(touched)
                except Exception:
                    self.logger.exception("refresh callback failed")

            return resolved

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "network": self.network_id,
            "interval": self.interval,
            "failure_count": self.breaker.failure_count,
            "pending": len(self.ledger.list_entries(network_id=self.network_id)),
        }
