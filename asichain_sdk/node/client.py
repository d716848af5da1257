"""
NodeClient - HTTP client for the RNode web API.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import Network, Settings, validate_url
from ..models import SignedDeploy
from .exceptions import (
    ApiError,
    CorsError,
    NetworkError,
    NodeTimeoutError,
    RequestError,
)
from .routing import NodeRole, resolve_route

logger = logging.getLogger(__name__)

_ROLE_LABELS = {
    NodeRole.VALIDATOR: "Validator Node",
    NodeRole.READ_ONLY: "Read-Only Node",
    NodeRole.ADMIN: "Admin Node",
}


def _build_session(retry_count: int) -> requests.Session:
    session = requests.Session()
    # Only idempotent reads are retried; a retried deploy could be submitted twice
    retries = Retry(
        total=retry_count,
        backoff_factor=0.5,
        status_forcelist=[502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    session.mount("http://", HTTPAdapter(max_retries=retries))
    session.mount("https://", HTTPAdapter(max_retries=retries))
    session.headers.update({"Content-Type": "application/json"})
    return session


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class NodeClient:
    """
    Client for one network's RNode endpoints.

    Reads go to the read-only node, writes to the validator and ``propose``
    to the admin node when one is configured. Every failure surfaces as
    :class:`ApiError`, :class:`RequestError` or a :class:`TransportError`
    subclass.
    """

    def __init__(
        self,
        network: Network,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the NodeClient

        Args:
            network: Network whose endpoints are used
            settings: Timeouts and retry count (defaults from the environment)
            logger: Optional logger instance

        Raises:
            ValueError: If an endpoint URL is malformed or insecure
        """
        self.network = network
        self.settings = settings or Settings.from_env()
        self.logger = logger or logging.getLogger(__name__)
        self.timeout = self.settings.node_timeout

        self._urls: Dict[NodeRole, str] = {}
        for role, url in (
            (NodeRole.VALIDATOR, network.validator_url),
            (NodeRole.READ_ONLY, network.read_only_url),
            (NodeRole.ADMIN, network.admin_url),
        ):
            if url:
                validate_url(url, f"{role.value}_url")
                self._urls[role] = url.rstrip("/")

        self._sessions: Dict[NodeRole, requests.Session] = {
            role: _build_session(self.settings.retry_count) for role in self._urls
        }

    @property
    def has_admin(self) -> bool:
        return NodeRole.ADMIN in self._urls

    def endpoint(self, role: NodeRole) -> Optional[str]:
        """Base URL used for a role, or None when it is not configured"""
        return self._urls.get(role)

    def describe(self, role: NodeRole) -> str:
        return f"{_ROLE_LABELS[role]} at {self._urls.get(role, '<not configured>')}"

    def call(self, operation: str, payload: Any = None, timeout: Optional[float] = None) -> Any:
        """
        Call a node API operation.

        Args:
            operation: Operation name, optionally with a path suffix (``blocks/10``)
            payload: Request body; a ``str`` is sent verbatim as ``text/plain``
            timeout: Override of the node timeout in seconds

        Returns:
            Decoded JSON body, or the raw text when the body is not JSON

        Raises:
            ApiError: If the node answered with an error status
            TransportError: If the node could not be reached
            RequestError: If the request could not be made
        """
        route = resolve_route(operation, has_payload=payload is not None, has_admin=self.has_admin)
        base_url = self._urls.get(route.role)
        if not base_url:
            raise RequestError(f"No {route.role.value} URL configured for network '{self.network.id}'")

        kwargs: Dict[str, Any] = {"timeout": timeout or self.timeout}
        if route.method == "POST":
            if isinstance(payload, str):
                kwargs["data"] = payload.encode("utf-8")
                kwargs["headers"] = {"Content-Type": "text/plain"}
            else:
                kwargs["json"] = payload

        self.logger.debug(f"{route.method} {route.path} -> {route.role.value}")
        try:
            response = self._sessions[route.role].request(
                route.method, f"{base_url}{route.path}", **kwargs
            )
        except requests.exceptions.SSLError as e:
            raise CorsError(base_url, f"Network Error: TLS failure talking to {self.describe(route.role)}") from e
        except requests.exceptions.Timeout as e:
            raise NodeTimeoutError(base_url, f"Network Error: Timed out waiting for {self.describe(route.role)}") from e
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(base_url, f"Network Error: Unable to connect to {self.describe(route.role)}") from e
        except requests.RequestException as e:
            raise RequestError(str(e)) from e

        if response.status_code >= 400:
            body = _response_body(response)
            raise ApiError(response.status_code, body if isinstance(body, str) else json.dumps(body))

        return _response_body(response)

    def get_latest_block_number(self) -> int:
        """
        Number of the most recent block, 0 when the node reports none.

        Raises:
            NodeError: If the node call fails
        """
        blocks = self.call("blocks/1")
        if isinstance(blocks, list) and blocks:
            return int(blocks[0].get("blockNumber") or 0)
        return 0

    def get_blocks(self, depth: int) -> List[Dict[str, Any]]:
        """The ``depth`` most recent blocks from the read-only node"""
        blocks = self.call(f"blocks/{depth}")
        return blocks if isinstance(blocks, list) else []

    def explore_deploy(self, term: str) -> List[Dict[str, Any]]:
        """
        Evaluate Rholang on the read-only node without a deploy.

        Returns:
            The ``expr`` list of the result, empty when there is none
        """
        result = self.call("explore-deploy", term)
        if isinstance(result, dict):
            return result.get("expr") or []
        return []

    def deploy(self, signed: SignedDeploy) -> Any:
        """Submit a signed deploy to the validator; returns the raw node answer"""
        return self.call("deploy", signed.to_wire())

    def propose(self) -> Any:
        """
        Ask the admin node to propose a block.

        Raises:
            RequestError: If no admin URL is configured
        """
        if not self.has_admin:
            raise RequestError("Admin URL not configured. Propose is only available for local networks.")
        return self.call("propose", {})

    def is_accessible(self, role: NodeRole = NodeRole.VALIDATOR) -> bool:
        """True when ``/api/status`` on the given node answers; never raises"""
        base_url = self._urls.get(role)
        if not base_url:
            return False
        try:
            response = self._sessions[role].get(f"{base_url}/api/status", timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.debug(f"Status check failed for {self.describe(role)}: {e}")
            return False
        return response.ok and bool(response.content)

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()
