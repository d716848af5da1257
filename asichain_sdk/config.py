"""
Network registry and runtime settings for the ASI chain SDK.
"""
import importlib.resources
import json
import logging
import os
import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

# Token constants
TOKEN_SYMBOL = "ASI"
TOKEN_DECIMALS = 8
ATOMIC_MULTIPLIER = 10 ** TOKEN_DECIMALS

# Estimated fee charged per deploy (0.0025 ASI)
ESTIMATED_FEE_ATOMIC = 250_000

# Tolerance used when inferring from the chain balance that a debit landed (0.0001 ASI)
BALANCE_EPSILON_ATOMIC = 10_000

DEFAULT_PHLO_LIMIT = 500_000
DEFAULT_PHLO_PRICE = 1


class Network(BaseModel):
    """Endpoints and shard of one network"""
    id: str
    name: str = ""
    validator_url: str = Field("", alias="validatorUrl")
    read_only_url: str = Field("", alias="readOnlyUrl")
    admin_url: Optional[str] = Field(None, alias="adminUrl")
    indexer_url: Optional[str] = Field(None, alias="indexerUrl")
    shard_id: str = Field("root", alias="shardId")

    class Config:
        frozen = True
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _fill_read_only_url(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        validator = (data.get("validator_url") or data.get("validatorUrl") or "").strip()
        indexer = (data.get("indexer_url") or data.get("indexerUrl") or "").strip()
        if not validator and not indexer:
            raise ValueError("either validator_url or indexer_url must be provided")
        read_only = (data.get("read_only_url") or data.get("readOnlyUrl") or "").strip()
        data.pop("readOnlyUrl", None)
        data["read_only_url"] = read_only or validator
        return data


def is_local_url(url: str) -> bool:
    """True for loopback hosts, which are allowed to use plain http"""
    host = urllib.parse.urlparse(url).hostname or ""
    return host in ("localhost", "127.0.0.1", "::1")


def validate_url(url: str, url_name: str = "url") -> None:
    """
    Validate an endpoint URL is secure.

    Args:
        url: Endpoint URL to validate
        url_name: Name used in the error message

    Raises:
        ValueError: If URL is malformed or uses insecure HTTP
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid {url_name} '{url}': scheme and host are required")

    if parsed.scheme != "https" and not is_local_url(url):
        if os.environ.get("ASI_INSECURE_NODE") != "1":
            raise ValueError(
                f"{url_name} must use https:// for security (got: {parsed.scheme}://). "
                "Set ASI_INSECURE_NODE=1 to allow HTTP for development."
            )


class NetworkConfig:
    """Registry of known networks, loaded from the packaged networks.json"""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network definitions.

        Returns:
            Mapping of network id to raw network configuration
        """
        if cls._networks_cache is not None:
            return cls._networks_cache

        resource = importlib.resources.files("asichain_sdk") / "data" / "networks.json"
        with resource.open("r", encoding="utf-8") as f:
            cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def list_networks(cls) -> List[str]:
        return sorted(cls.load_networks())

    @staticmethod
    def _env_prefix(network_id: str) -> str:
        return network_id.upper().replace("-", "_")

    @classmethod
    def get_network(cls, network_id: str) -> Network:
        """
        Get a network, with environment overrides applied.

        Each endpoint can be overridden with ``<NETWORK>_VALIDATOR_URL``,
        ``<NETWORK>_READ_ONLY_URL``, ``<NETWORK>_ADMIN_URL``,
        ``<NETWORK>_INDEXER_URL`` and ``<NETWORK>_SHARD_ID``.

        Raises:
            ValueError: If the network is unknown
        """
        networks = cls.load_networks()
        if network_id not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network '{network_id}'. Available networks: {available}")

        raw = dict(networks[network_id])
        prefix = cls._env_prefix(network_id)
        overrides = {
            "validatorUrl": f"{prefix}_VALIDATOR_URL",
            "readOnlyUrl": f"{prefix}_READ_ONLY_URL",
            "adminUrl": f"{prefix}_ADMIN_URL",
            "indexerUrl": f"{prefix}_INDEXER_URL",
            "shardId": f"{prefix}_SHARD_ID",
        }
        for key, env_var in overrides.items():
            value = os.environ.get(env_var)
            if value:
                logger.debug("Using %s from %s", key, env_var)
                raw[key] = value

        return Network(id=network_id, **raw)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, value, default)
        return default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, value, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Timeouts and intervals used across the SDK"""
    node_timeout: float = 30.0
    indexer_timeout: float = 10.0
    probe_timeout: float = 5.0
    balance_cache_ttl: float = 15.0
    poll_interval: float = 15.0
    max_pending_age_hours: float = 24.0
    max_transport_failures: int = 3
    fallback_block_depth: int = 10
    retry_count: int = 2

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``ASI_*`` environment variables"""
        return cls(
            node_timeout=_env_float("ASI_NODE_TIMEOUT", cls.node_timeout),
            indexer_timeout=_env_float("ASI_INDEXER_TIMEOUT", cls.indexer_timeout),
            probe_timeout=_env_float("ASI_PROBE_TIMEOUT", cls.probe_timeout),
            balance_cache_ttl=_env_float("ASI_BALANCE_CACHE_TTL", cls.balance_cache_ttl),
            poll_interval=_env_float("ASI_POLL_INTERVAL", cls.poll_interval),
            max_pending_age_hours=_env_float("ASI_MAX_PENDING_AGE_HOURS", cls.max_pending_age_hours),
            max_transport_failures=_env_int("ASI_MAX_TRANSPORT_FAILURES", cls.max_transport_failures),
            fallback_block_depth=_env_int("ASI_FALLBACK_BLOCK_DEPTH", cls.fallback_block_depth),
            retry_count=_env_int("ASI_RETRY_COUNT", cls.retry_count),
        )
