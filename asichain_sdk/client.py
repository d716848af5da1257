"""
WalletClient - Main client for the ASI chain SDK.
"""
import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Union

from .balance import BalanceCache, BalanceFetcher
from .config import (
    ESTIMATED_FEE_ATOMIC,
    Network,
    NetworkConfig,
    Settings,
)
from .confirmation import DEFAULT_MAX_ATTEMPTS, ConfirmationResolver
from .events import (
    BALANCE_CHANGED,
    DEPLOY_CONFIRMED,
    DEPLOY_FAILED,
    HISTORY_UPDATED,
    POLLING_STOPPED,
    EventEmitter,
)
from .exceptions import AccountLockedError, AsiChainError, DeployFailed
from .ledger import KeyValueStore, MemoryStore, PendingLedger
from .models import (
    Account,
    ConfirmationResult,
    PendingTransactionEntry,
    TransactionKind,
    TransactionRecord,
)
from .node.client import NodeClient
from .node.exceptions import IndexerUnavailable, NodeError
from .node.indexer import IndexerClient
from .node.routing import NodeRole
from .polling import PollingOrchestrator
from .signer import PrivateKeyLike
from .submitter import DeploySubmitter
from .utils import to_atomic

AccountRef = Union[Account, str]
NetworkRef = Union[Network, str]


class KeyProvider(Protocol):
    """Source of private keys; the SDK never stores them"""

    def unlock(self, account_id: str, password: str) -> Optional[str]:
        """Return the account's private key hex, or None when it cannot be unlocked"""
        ...


@dataclass
class _NetworkContext:
    network: Network
    node: NodeClient
    indexer: IndexerClient
    fetcher: BalanceFetcher
    submitter: DeploySubmitter
    resolver: ConfirmationResolver

    def close(self) -> None:
        self.node.close()
        self.indexer.close()


def _now_ms() -> int:
    return int(time.time() * 1000)


class WalletClient:
    """
    Client for submitting and tracking ASI transactions.

    This client handles:
    1. Signing and submitting transfers and contract deploys
    2. Tracking submitted deploys until the chain confirms them
    3. Showing balances that already include in-flight debits

    Every balance returned by this client is a display balance: the chain
    balance with the pending ledger applied.
    """

    def __init__(
        self,
        network: NetworkRef = "devnet",
        key_provider: Optional[KeyProvider] = None,
        accounts: Iterable[Account] = (),
        store: Optional[KeyValueStore] = None,
        settings: Optional[Settings] = None,
        origin_scheme: Optional[str] = None,
        is_authenticated: Optional[Callable[[], bool]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the WalletClient

        Args:
            network: Selected network, as a network id or a Network
            key_provider: Unlocks account keys for ``submit_send``
            accounts: Accounts owned by the wallet
            store: Persistence for the pending ledger (in memory by default)
            settings: Timeouts and intervals (defaults from the environment)
            origin_scheme: Scheme of the embedding origin, for mixed-content checks
            is_authenticated: Session check consulted before each polling pass
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If the network is unknown or its URLs are insecure
        """
        self.logger = logger or logging.getLogger(__name__)
        self.settings = settings or Settings.from_env()
        self.key_provider = key_provider
        self.origin_scheme = origin_scheme
        self.is_authenticated = is_authenticated or (lambda: True)

        self.events = EventEmitter()
        self.balance_cache = BalanceCache(ttl=self.settings.balance_cache_ttl)
        self.ledger = PendingLedger(store if store is not None else MemoryStore())

        self._accounts: Dict[str, Account] = {a.id: a for a in accounts}
        self._contexts: Dict[str, _NetworkContext] = {}
        self._lock = threading.RLock()
        self._orchestrator: Optional[PollingOrchestrator] = None
        self._selected: Optional[Network] = None
        self.select_network(network)

    @staticmethod
    def _as_network(network: NetworkRef) -> Network:
        return NetworkConfig.get_network(network) if isinstance(network, str) else network

    @property
    def network(self) -> Optional[Network]:
        return self._selected

    def select_network(self, network: Optional[NetworkRef]) -> None:
        """
        Switch the selected network. Polling of another network is stopped.
        """
        selected = self._as_network(network) if network is not None else None
        if selected is not None:
            self._context(selected)
        with self._lock:
            if self._orchestrator is not None and (
                selected is None or self._orchestrator.network_id != selected.id
            ):
                self._orchestrator.stop()
                self._orchestrator = None
            self._selected = selected

    def _context(self, network: Optional[NetworkRef] = None) -> _NetworkContext:
        if network is None:
            if self._selected is None:
                raise ValueError("No network selected")
            network = self._selected
        with self._lock:
            # Ids of networks already in use resolve without the registry
            if isinstance(network, str) and network in self._contexts:
                return self._contexts[network]
            net = self._as_network(network)
            ctx = self._contexts.get(net.id)
            if ctx is None or ctx.network != net:
                if ctx is not None:
                    ctx.close()
                node = NodeClient(net, self.settings, logger=self.logger)
                indexer = IndexerClient(net.indexer_url, self.settings, self.origin_scheme, logger=self.logger)
                ctx = _NetworkContext(
                    network=net,
                    node=node,
                    indexer=indexer,
                    fetcher=BalanceFetcher(node, self.balance_cache, logger=self.logger),
                    submitter=DeploySubmitter(node, shard_id=net.shard_id, logger=self.logger),
                    resolver=ConfirmationResolver(node, indexer, self.settings, logger=self.logger),
                )
                self._contexts[net.id] = ctx
            return ctx

    def add_account(self, account: Account) -> None:
        with self._lock:
            self._accounts[account.id] = account

    @property
    def accounts(self) -> List[Account]:
        with self._lock:
            return list(self._accounts.values())

    def _account(self, account: AccountRef) -> Account:
        if isinstance(account, Account):
            return account
        with self._lock:
            found = self._accounts.get(account)
        if found is None:
            raise ValueError(f"Unknown account '{account}'")
        return found

    def get_chain_balance(self, account: AccountRef, network: Optional[NetworkRef] = None,
                          force_refresh: bool = False) -> int:
        """
        Raw chain balance in atomic units.

        When the node cannot be reached the last balance ever observed is
        returned instead.

        Raises:
            NodeError: If the node fails and no balance was ever observed
        """
        acct = self._account(account)
        ctx = self._context(network)
        try:
            return ctx.fetcher.get_balance(acct.address, force_refresh=force_refresh)
        except NodeError:
            last = self.balance_cache.last_known(acct.address, ctx.fetcher.endpoint)
            if last is None:
                raise
            self.logger.warning(f"Using last known balance of {acct.address} while the node is unreachable")
            return last.balance

    def get_display_balance(self, account: AccountRef, network: Optional[NetworkRef] = None,
                            force_refresh: bool = False) -> int:
        """
        Balance to show right now, in atomic units.

        Reads the chain balance (cached for a few seconds unless
        ``force_refresh``), evicts pending entries it already reflects, and
        subtracts what is still pending.

        Raises:
            NodeError: If the node fails and no balance was ever observed
        """
        acct = self._account(account)
        net = self._context(network).network
        chain = self.get_chain_balance(acct, net, force_refresh=force_refresh)
        self.ledger.reconcile(chain, acct.id, net.id)
        return self.ledger.overlay_balance(chain, acct.id, net.id)

    def _expected_after(self, account: Account, network: Network, debit: int) -> Optional[int]:
        try:
            current = self.get_display_balance(account, network)
        except NodeError as e:
            self.logger.warning(f"Balance of {account.address} unknown before submission: {e}")
            return None
        if debit > current:
            raise DeployFailed(
                f"Insufficient balance: {debit} required, {current} available (atomic units)"
            )
        return current - debit

    def submit_send(self, from_account: AccountRef, to_address: str,
                    amount: Union[str, int, Decimal], password: str,
                    network: Optional[NetworkRef] = None) -> str:
        """
        Transfer funds and track the transfer until it is confirmed.

        Args:
            from_account: Sending account
            to_address: Receiving ASI address
            amount: Amount in ASI (display units, e.g. ``"10.5"``)
            password: Password passed to the key provider
            network: Network to use instead of the selected one

        Returns:
            Deploy id of the transfer

        Raises:
            AccountLockedError: If the key provider cannot unlock the account
            DeployFailed: If the amount is invalid, the balance insufficient,
                or submission fails
        """
        acct = self._account(from_account)
        ctx = self._context(network)
        try:
            atomic = to_atomic(amount)
        except ValueError as e:
            raise DeployFailed(str(e)) from e
        if atomic <= 0:
            raise DeployFailed("Amount must be greater than zero")

        if self.key_provider is None:
            raise AccountLockedError(acct.id, "No key provider configured")
        private_key = self.key_provider.unlock(acct.id, password)
        if not private_key:
            raise AccountLockedError(acct.id)

        expected = self._expected_after(acct, ctx.network, atomic + ESTIMATED_FEE_ATOMIC)
        deploy_id = ctx.submitter.transfer(acct.address, to_address, atomic, private_key)

        self.ledger.record(PendingTransactionEntry(
            deploy_id=deploy_id,
            from_address=acct.address,
            to_address=to_address,
            amount=atomic,
            submitted_at=_now_ms(),
            owner_account_id=acct.id,
            kind=TransactionKind.SEND,
            estimated_fee=ESTIMATED_FEE_ATOMIC,
            expected_balance_after_confirmation=expected,
            network_id=ctx.network.id,
        ))
        self._emit_display_balance(acct, ctx.network)
        return deploy_id

    def submit_contract(self, code: str, phlo_limit: int, private_key: PrivateKeyLike,
                        network: Optional[NetworkRef] = None,
                        owner_account_id: Optional[str] = None) -> str:
        """
        Deploy Rholang code.

        When ``owner_account_id`` names a wallet account the estimated fee is
        tracked as pending against it.

        Returns:
            Deploy id

        Raises:
            DeployFailed: If submission fails
        """
        ctx = self._context(network)
        owner = self._account(owner_account_id) if owner_account_id else None
        expected = None
        if owner is not None:
            expected = self._expected_after(owner, ctx.network, ESTIMATED_FEE_ATOMIC)

        deploy_id = ctx.submitter.submit(code, private_key, phlo_limit)

        if owner is not None:
            self.ledger.record(PendingTransactionEntry(
                deploy_id=deploy_id,
                from_address=owner.address,
                submitted_at=_now_ms(),
                owner_account_id=owner.id,
                kind=TransactionKind.CONTRACT_DEPLOY,
                estimated_fee=ESTIMATED_FEE_ATOMIC,
                expected_balance_after_confirmation=expected,
                network_id=ctx.network.id,
            ))
            self._emit_display_balance(owner, ctx.network)
        return deploy_id

    def wait_for_confirmation(self, deploy_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                              network: Optional[NetworkRef] = None) -> ConfirmationResult:
        """
        Block until the deploy is resolved or attempts run out.

        A final result evicts the deploy from the pending ledger and refreshes
        the affected balances.
        """
        result = self._context(network).resolver.resolve(deploy_id, max_attempts=max_attempts)
        if result.is_final:
            entry = self.ledger.evict(deploy_id)
            if entry is not None:
                self._on_resolved(entry, result)
                self._refresh_entries([entry])
        return result

    def start_polling(self, network: Optional[NetworkRef] = None) -> None:
        """
        Start background resolution of pending deploys.

        Restarting after the circuit breaker tripped resets its failure count.
        """
        ctx = self._context(network)
        with self._lock:
            if self._orchestrator is not None and self._orchestrator.network_id != ctx.network.id:
                self._orchestrator.stop()
                self._orchestrator = None
            if self._orchestrator is None:
                self._orchestrator = PollingOrchestrator(
                    ledger=self.ledger,
                    resolver=ctx.resolver,
                    indexer=ctx.indexer,
                    network_id=ctx.network.id,
                    interval=self.settings.poll_interval,
                    max_pending_age_hours=self.settings.max_pending_age_hours,
                    failure_threshold=self.settings.max_transport_failures,
                    session_guard=self._session_ok,
                    on_resolved=self._on_resolved,
                    on_refresh=self._refresh_entries,
                    on_stopped=self._on_polling_stopped,
                    logger=self.logger,
                )
            orchestrator = self._orchestrator
        orchestrator.start()

    def stop_polling(self) -> None:
        with self._lock:
            orchestrator = self._orchestrator
        if orchestrator is not None:
            orchestrator.stop()

    @property
    def polling(self) -> Optional[PollingOrchestrator]:
        return self._orchestrator

    def polling_status(self) -> Dict[str, object]:
        if self._orchestrator is None:
            return {"state": "idle", "network": None, "interval": self.settings.poll_interval}
        return self._orchestrator.status()

    def _session_ok(self) -> bool:
        return self._selected is not None and bool(self.is_authenticated())

    def _on_resolved(self, entry: PendingTransactionEntry, result: ConfirmationResult) -> None:
        if result.status == "errored":
            self.events.emit(DEPLOY_FAILED, deploy_id=entry.deploy_id, entry=entry, result=result)
        else:
            self.events.emit(DEPLOY_CONFIRMED, deploy_id=entry.deploy_id, entry=entry, result=result)

    def _on_polling_stopped(self, reason: str) -> None:
        self.events.emit(POLLING_STOPPED, reason=reason)

    def _affected_accounts(self, entries: Iterable[PendingTransactionEntry]) -> List[Account]:
        affected: Dict[str, Account] = {}
        with self._lock:
            by_address = {a.address.lower(): a for a in self._accounts.values()}
            for entry in entries:
                owner = self._accounts.get(entry.owner_account_id)
                if owner is not None:
                    affected[owner.id] = owner
                if entry.to_address:
                    receiver = by_address.get(entry.to_address.lower())
                    if receiver is not None:
                        affected[receiver.id] = receiver
        return list(affected.values())

    def _refresh_entries(self, entries: List[PendingTransactionEntry]) -> None:
        networks = {e.network_id for e in entries}
        network = self._selected
        if len(networks) == 1 and None not in networks:
            network = self._context(networks.pop()).network
        for account in self._affected_accounts(entries):
            self.refresh_account(account, network)

    def _emit_display_balance(self, account: Account, network: Network) -> None:
        try:
            balance = self.get_display_balance(account, network)
        except NodeError:
            return
        self.events.emit(BALANCE_CHANGED, account_id=account.id, balance=balance)

    def refresh_account(self, account: AccountRef, network: Optional[NetworkRef] = None) -> None:
        """Force-refresh an account's balance and history, emitting events for both"""
        acct = self._account(account)
        try:
            balance = self.get_display_balance(acct, network, force_refresh=True)
        except AsiChainError as e:
            self.logger.error(f"Error refreshing balance for {acct.name or acct.id}: {e}")
        else:
            self.events.emit(BALANCE_CHANGED, account_id=acct.id, balance=balance)

        if acct.public_key and self._context(network).indexer.configured:
            history = self.fetch_transaction_history(acct, network=network)
            self.events.emit(HISTORY_UPDATED, account_id=acct.id, history=history)

    def fetch_transaction_history(self, account: AccountRef, limit: int = 50,
                                  network: Optional[NetworkRef] = None) -> List[TransactionRecord]:
        """
        Confirmed history of an account, newest first.

        Returns an empty list when the indexer is unavailable.

        Raises:
            ValueError: If the account has no public key
        """
        acct = self._account(account)
        if not acct.public_key:
            raise ValueError("Public key is required for transaction history")
        try:
            return self._context(network).indexer.fetch_transaction_history(
                acct.address, acct.public_key, limit
            )
        except IndexerUnavailable as e:
            self.logger.warning(f"Transaction history unavailable: {e.reason}")
            return []

    def propose(self, network: Optional[NetworkRef] = None):
        """
        Ask the admin node to propose a block (local networks only).

        Raises:
            RequestError: If the network has no admin URL
        """
        return self._context(network).node.propose()

    def is_node_accessible(self, role: Union[NodeRole, str] = NodeRole.VALIDATOR,
                           network: Optional[NetworkRef] = None) -> bool:
        return self._context(network).node.is_accessible(NodeRole(role))

    def close(self) -> None:
        """Stop polling and release every HTTP session"""
        self.stop_polling()
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
        for ctx in contexts:
            ctx.close()

    def __enter__(self) -> "WalletClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
