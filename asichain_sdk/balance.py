"""
Short-lived balance cache and the fetcher that fills it.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from cachetools import TTLCache

from .models import CachedBalance
from .node.client import NodeClient
from .node.exceptions import NodeError
from .node.routing import NodeRole
from .terms import balance_term

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class BalanceCache:
    """
    Balances keyed by ``(address, endpoint)``, valid for ``ttl`` seconds.

    This is the only writer of :class:`CachedBalance` values. A value observed
    earlier never replaces one observed later, so a slow lookup cannot
    overwrite a fresher answer. Expired values remain available through
    :meth:`last_known` for offline display.
    """

    def __init__(self, ttl: float = 15.0, maxsize: int = 1024,
                 timer: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._timer = timer
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._last_known: Dict[CacheKey, CachedBalance] = {}
        self._lock = threading.RLock()

    def now(self) -> float:
        return self._timer()

    def get(self, address: str, endpoint: str) -> Optional[CachedBalance]:
        """Fresh cached value, or None when missing or observed more than ``ttl`` ago"""
        with self._lock:
            value = self._cache.get((address, endpoint))
            # Age counts from the observation, not from insertion into the cache
            if value is None or self.now() - value.observed_at >= self.ttl:
                return None
            return value

    def put(self, address: str, endpoint: str, balance: int,
            observed_at: Optional[float] = None) -> CachedBalance:
        """
        Store a balance.

        Returns:
            The value now held for the key, which is the existing one when it
            was observed later than ``observed_at``
        """
        key = (address, endpoint)
        value = CachedBalance(
            address=address,
            endpoint=endpoint,
            balance=balance,
            observed_at=self.now() if observed_at is None else observed_at,
        )
        with self._lock:
            current = self._last_known.get(key)
            if current is not None and current.observed_at > value.observed_at:
                return current
            self._cache[key] = value
            self._last_known[key] = value
            return value

    def last_known(self, address: str, endpoint: Optional[str] = None) -> Optional[CachedBalance]:
        """Most recent value ever observed, regardless of age"""
        with self._lock:
            if endpoint is not None:
                return self._last_known.get((address, endpoint))
            candidates: List[CachedBalance] = [
                v for (addr, _), v in self._last_known.items() if addr == address
            ]
        return max(candidates, key=lambda v: v.observed_at, default=None)

    def invalidate(self, address: str) -> None:
        """Drop fresh values of an address so the next read hits the node"""
        with self._lock:
            for key in [k for k in self._cache.keys() if k[0] == address]:
                self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._last_known.clear()


def parse_balance(expr: List[Dict[str, Any]]) -> Tuple[int, Optional[str]]:
    """
    Interpret the result of the balance term.

    Returns:
        ``(balance, vault_error)``; a vault error or an empty result reads as 0
    """
    if not expr:
        return 0, None
    first = expr[0] or {}
    if "ExprInt" in first and first["ExprInt"].get("data") is not None:
        return int(first["ExprInt"]["data"]), None
    if "ExprString" in first and first["ExprString"].get("data") is not None:
        return 0, str(first["ExprString"]["data"])
    return 0, None


class BalanceFetcher:
    """Reads balances from the read-only node through a :class:`BalanceCache`"""

    def __init__(self, node: NodeClient, cache: BalanceCache,
                 logger: Optional[logging.Logger] = None):
        self.node = node
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)

    @property
    def endpoint(self) -> str:
        return self.node.endpoint(NodeRole.READ_ONLY) or ""

    def get_balance(self, address: str, force_refresh: bool = False) -> int:
        """
        Balance of an address in atomic units.

        Args:
            address: ASI address
            force_refresh: Skip the cache even when a fresh value exists

        Returns:
            Balance in atomic units

        Raises:
            NodeError: If the node cannot be queried; failures are not cached
        """
        endpoint = self.endpoint
        if not force_refresh:
            cached = self.cache.get(address, endpoint)
            if cached is not None:
                return cached.balance

        observed_at = self.cache.now()
        try:
            expr = self.node.explore_deploy(balance_term(address))
        except NodeError as e:
            self.logger.warning(f"Balance lookup for {address} failed: {e}")
            raise

        balance, vault_error = parse_balance(expr)
        if vault_error is not None:
            self.logger.error(f"Balance check error for {address}: {vault_error}")
        return self.cache.put(address, endpoint, balance, observed_at=observed_at).balance
