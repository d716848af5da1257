"""
Thread-safe rate-limited logging.

Used for warnings that repeat on every polling tick while the network is
unhealthy, so the log shows the condition once per interval.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

_DEFAULT_INTERVAL = 60

# One cache per interval; entries expire once the interval has passed
_caches = {}
_caches_lock = threading.RLock()


def _cache_for(interval: int) -> TTLCache:
    with _caches_lock:
        cache = _caches.get(interval)
        if cache is None:
            cache = _caches[interval] = TTLCache(maxsize=256, ttl=interval)
        return cache


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = _DEFAULT_INTERVAL,
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message unless the same message was logged within ``interval`` seconds.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        interval: Minimum interval between identical messages in seconds
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    key = f"{log_instance.name}:{level}:{message}"

    cache = _cache_for(interval)
    with _caches_lock:
        if key in cache:
            return False
        cache[key] = True
    log_method(message)
    return True


def reset() -> None:
    """Forget every suppressed message"""
    with _caches_lock:
        for cache in _caches.values():
            cache.clear()
