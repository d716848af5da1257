"""
GraphQL client for the chain indexer.

The indexer is a convenience: every failure is reported as
:class:`IndexerUnavailable` so callers can switch to the node instead.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from ..config import Settings
from ..models import TransactionRecord
from ..utils import is_mixed_content
from .exceptions import (
    ApiError,
    CorsError,
    IndexerUnavailable,
    NetworkError,
    NodeTimeoutError,
)

logger = logging.getLogger(__name__)

PROBE_QUERY = "query { __typename }"

DEPLOY_STATUS_QUERY = """
query GetDeployStatus($deployId: String!) {
  deployments(where: {deploy_id: {_eq: $deployId}}) {
    deploy_id
    deployer
    timestamp
    errored
    error_message
    block_number
    transfers {
      from_address
      to_address
      amount_asi
      status
    }
    block {
      block_number
      block_hash
      timestamp
    }
  }
}
"""

HISTORY_QUERY = """
query GetTransactionHistory($address: String!, $publicKey: String!, $limit: Int!) {
  transfers(
    where: {_or: [{from_public_key: {_eq: $publicKey}}, {to_address: {_eq: $address}}]},
    order_by: {block_number: desc},
    limit: $limit
  ) {
    deploy_id
    block_number
    from_address
    to_address
    amount_asi
    timestamp
  }
  deployments(
    where: {deployer: {_eq: $publicKey}},
    order_by: {block_number: desc},
    limit: $limit
  ) {
    deploy_id
    block_number
    deployer
    timestamp
    block {
      block_hash
    }
  }
}
"""


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class IndexerClient:
    """Client for the GraphQL indexer of one network"""

    def __init__(
        self,
        url: Optional[str],
        settings: Optional[Settings] = None,
        origin_scheme: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the IndexerClient

        Args:
            url: GraphQL endpoint, or None when the network has no indexer
            settings: Timeouts (defaults from the environment)
            origin_scheme: Scheme of the embedding origin; ``https`` blocks
                plain-http indexers the way a browser does
            logger: Optional logger instance
        """
        self.url = url.strip() if url else None
        self.settings = settings or Settings.from_env()
        self.origin_scheme = origin_scheme
        self.logger = logger or logging.getLogger(__name__)
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def query(self, query: str, variables: Optional[Dict[str, Any]] = None,
              timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Run a GraphQL query.

        Returns:
            The ``data`` object of the response

        Raises:
            IndexerUnavailable: On any failure, with ``transport`` set when the
                indexer could not be reached at all
        """
        if not self.url:
            raise IndexerUnavailable("no indexer configured")
        if is_mixed_content(self.origin_scheme, self.url):
            raise IndexerUnavailable(
                "mixed content: secure origin cannot query a plain-http indexer",
                transport=CorsError(self.url, f"Blocked mixed-content request to {self.url}"),
            )

        try:
            response = self.session.post(
                self.url,
                json={"query": query, "variables": variables or {}},
                timeout=timeout or self.settings.indexer_timeout,
            )
        except requests.exceptions.SSLError as e:
            raise IndexerUnavailable(str(e), transport=CorsError(self.url)) from e
        except requests.exceptions.Timeout as e:
            raise IndexerUnavailable(
                "request timed out", transport=NodeTimeoutError(self.url, f"Timed out waiting for {self.url}")
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise IndexerUnavailable(str(e), transport=NetworkError(self.url)) from e
        except requests.RequestException as e:
            raise IndexerUnavailable(str(e)) from e

        if response.status_code >= 400:
            error = ApiError(response.status_code, response.text)
            raise IndexerUnavailable(str(error)) from error

        try:
            body = response.json()
        except ValueError as e:
            raise IndexerUnavailable(f"invalid JSON from indexer: {e}") from e

        if not isinstance(body, dict):
            raise IndexerUnavailable("unexpected indexer response shape")
        if body.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in body["errors"]
            )
            raise IndexerUnavailable(f"GraphQL query error: {messages}")

        return body.get("data") or {}

    def probe(self) -> None:
        """
        Cheap reachability check used once per polling tick.

        Raises:
            IndexerUnavailable: If the indexer does not answer
        """
        self.query(PROBE_QUERY, timeout=self.settings.probe_timeout)

    def find_deployment(self, deploy_id: str) -> Optional[Dict[str, Any]]:
        """
        Look up a deploy.

        Returns:
            The indexer's deployment record, or None when it has not seen it yet

        Raises:
            IndexerUnavailable: If the indexer cannot answer
        """
        data = self.query(DEPLOY_STATUS_QUERY, {"deployId": deploy_id})
        deployments = data.get("deployments") or []
        return deployments[0] if deployments else None

    def fetch_transaction_history(self, address: str, public_key: str,
                                  limit: int = 50) -> List[TransactionRecord]:
        """
        Confirmed transfers and deploys of an account, newest first.

        Transfers and deployments sharing a deploy id are merged into one
        record; the deployment contributes its block hash.

        Raises:
            ValueError: If address or public key is empty
            IndexerUnavailable: If the indexer cannot answer
        """
        if not address or not address.strip():
            raise ValueError("Address is required for transaction history")
        if not public_key or not public_key.strip():
            raise ValueError("Public key is required for transaction history")

        data = self.query(HISTORY_QUERY, {
            "address": address.strip(),
            "publicKey": public_key.strip(),
            "limit": limit,
        })
        own = address.strip().lower()

        records: Dict[str, TransactionRecord] = {}
        for tx in data.get("transfers") or []:
            from_addr = (tx.get("from_address") or "").strip().lower()
            tx_type = "send" if from_addr and from_addr == own else "receive"
            amount = tx.get("amount_asi")
            records[tx["deploy_id"]] = TransactionRecord(
                deploy_id=tx["deploy_id"],
                block_number=_to_int(tx.get("block_number")),
                from_address=tx.get("from_address"),
                to_address=tx.get("to_address"),
                amount=None if amount is None else str(amount),
                timestamp=_to_int(tx.get("timestamp")) or 0,
                type=tx_type,
            )

        for dep in data.get("deployments") or []:
            block_hash = (dep.get("block") or {}).get("block_hash")
            existing = records.get(dep["deploy_id"])
            if existing is not None and existing.type != "deploy":
                records[dep["deploy_id"]] = existing.model_copy(update={"block_hash": block_hash})
                continue
            records[dep["deploy_id"]] = TransactionRecord(
                deploy_id=dep["deploy_id"],
                block_number=_to_int(dep.get("block_number")),
                from_address=dep.get("deployer"),
                timestamp=_to_int(dep.get("timestamp")) or 0,
                block_hash=block_hash,
                type="deploy",
            )

        history = sorted(records.values(), key=lambda r: r.timestamp, reverse=True)
        self.logger.debug(f"Fetched {len(history)} history records for {address}")
        return history

    def close(self) -> None:
        self.session.close()
