"""
PendingLedger - durable record of submitted but unconfirmed transactions.
"""
import json
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from ..config import BALANCE_EPSILON_ATOMIC
from ..models import PendingTransactionEntry
from ..utils import short_id
from .store import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "asi_wallet_pending_transactions"

DEFAULT_MAX_AGE_HOURS = 24.0


def _now_ms() -> int:
    return int(time.time() * 1000)


class PendingLedger:
    """
    Optimistic view of debits the chain has not reflected yet.

    This is the only writer of pending entries. Entries are keyed by deploy
    id, so recording the same deploy twice keeps a single entry.

    Balance-based eviction only removes entries in submission order: an entry
    is considered landed when the chain balance has dropped to its expected
    value, and every earlier entry of the same account must have landed
    first. The confirmation resolver remains the authoritative way to evict
    an entry out of order.
    """

    def __init__(
        self,
        store: KeyValueStore,
        epsilon: int = BALANCE_EPSILON_ATOMIC,
        clock: Callable[[], int] = _now_ms,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.epsilon = epsilon
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, PendingTransactionEntry]:
        stored = self.store.get(STORAGE_KEY)
        if stored is None:
            return {}
        try:
            raw = json.loads(stored)
        except (TypeError, ValueError):
            raw = None
        if not isinstance(raw, list):
            self.logger.warning("Pending ledger data is malformed, starting empty")
            return {}

        entries: Dict[str, PendingTransactionEntry] = {}
        for item in raw:
            try:
                entry = PendingTransactionEntry.model_validate(item)
            except ValidationError as e:
                self.logger.warning(f"Dropping malformed pending entry: {e}")
                continue
            entries[entry.deploy_id] = entry
        return entries

    def _save(self, entries: Dict[str, PendingTransactionEntry]) -> None:
        if entries:
            self.store.set(STORAGE_KEY, json.dumps([e.model_dump(mode="json") for e in entries.values()]))
        else:
            self.store.remove(STORAGE_KEY)

    @staticmethod
    def _matches(entry: PendingTransactionEntry, account_id: Optional[str],
                 network_id: Optional[str]) -> bool:
        if account_id is not None and entry.owner_account_id != account_id:
            return False
        if network_id is not None and entry.network_id not in (None, network_id):
            return False
        return True

    def record(self, entry: PendingTransactionEntry) -> None:
        """Insert or replace the entry for ``entry.deploy_id``"""
        with self._lock:
            entries = self._load()
            entries[entry.deploy_id] = entry
            self._save(entries)
        self.logger.info(f"Recorded pending {entry.kind.value} {short_id(entry.deploy_id)}")

    def get(self, deploy_id: str) -> Optional[PendingTransactionEntry]:
        with self._lock:
            return self._load().get(deploy_id)

    def evict(self, deploy_id: str) -> Optional[PendingTransactionEntry]:
        """Remove one entry; returns it, or None when it was not pending"""
        with self._lock:
            entries = self._load()
            entry = entries.pop(deploy_id, None)
            if entry is not None:
                self._save(entries)
        return entry

    def list_entries(self, account_id: Optional[str] = None,
                     network_id: Optional[str] = None) -> List[PendingTransactionEntry]:
        """Pending entries, oldest first, optionally filtered by owner and network"""
        with self._lock:
            entries = self._load().values()
        return sorted(
            (e for e in entries if self._matches(e, account_id, network_id)),
            key=lambda e: (e.submitted_at, e.deploy_id),
        )

    def pending_debit(self, account_id: str, network_id: Optional[str] = None) -> int:
        """Sum of the debits of an account's pending entries, in atomic units"""
        return sum(e.debit for e in self.list_entries(account_id, network_id))

    def overlay_balance(self, chain_balance: int, account_id: str,
                        network_id: Optional[str] = None) -> int:
        """
        Balance to display: the chain balance minus every pending debit.

        Args:
            chain_balance: Balance read from the chain, in atomic units
            account_id: Owner of the entries to apply

        Returns:
            Display balance in atomic units, never below zero
        """
        return max(0, chain_balance - self.pending_debit(account_id, network_id))

    def reconcile(self, chain_balance: int, account_id: str,
                  network_id: Optional[str] = None) -> List[PendingTransactionEntry]:
        """
        Evict entries whose debit the chain balance already shows.

        Walks the account's entries oldest first and stops at the first one
        whose expected balance is unknown or not yet reached.

        Returns:
            The evicted entries
        """
        evicted: List[PendingTransactionEntry] = []
        with self._lock:
            entries = self._load()
            ordered = sorted(
                (e for e in entries.values() if self._matches(e, account_id, network_id)),
                key=lambda e: (e.submitted_at, e.deploy_id),
            )
            for entry in ordered:
                expected = entry.expected_balance_after_confirmation
                if expected is None or chain_balance > expected + self.epsilon:
                    break
                evicted.append(entries.pop(entry.deploy_id))
            if evicted:
                self._save(entries)

        for entry in evicted:
            self.logger.info(f"Pending {short_id(entry.deploy_id)} reflected in chain balance, evicted")
        return evicted

    def evict_expired(self, max_age_hours: float = DEFAULT_MAX_AGE_HOURS) -> List[PendingTransactionEntry]:
        """
        Drop entries older than ``max_age_hours``.

        Such deploys most likely never reached the network.
        """
        cutoff = self._clock() - int(max_age_hours * 3600 * 1000)
        with self._lock:
            entries = self._load()
            expired = [e for e in entries.values() if e.submitted_at < cutoff]
            for entry in expired:
                del entries[entry.deploy_id]
            if expired:
                self._save(entries)

        for entry in expired:
            self.logger.warning(
                f"Pending {short_id(entry.deploy_id)} is older than {max_age_hours:g}h and was "
                "probably never included; removing it"
            )
        return expired

    def clear(self) -> None:
        with self._lock:
            self.store.remove(STORAGE_KEY)

