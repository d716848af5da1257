"""
Confirmation resolution: deploy id -> ConfirmationResult.

Resolution runs as a short pipeline. The indexer is asked first; when it
cannot answer, or has not seen the deploy after the allowed attempts, the
most recent blocks of the read-only node are scanned. A deploy that neither
source knows about is reported as pending, never as failed.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import Settings
from .models import CompletedResult, ConfirmationResult, ErroredResult, PendingResult
from .node.client import NodeClient
from .node.exceptions import IndexerUnavailable, NodeError
from .node.indexer import IndexerClient
from .utils import short_id

logger = logging.getLogger(__name__)

# Seconds between indexer attempts for the same deploy
INDEXER_RETRY_DELAY = 5.0

DEFAULT_MAX_ATTEMPTS = 20

Step = Callable[[str, int, Optional["RecentBlocks"]], Optional[ConfirmationResult]]


def result_from_indexer_record(deploy_id: str, record: Dict[str, Any]) -> ConfirmationResult:
    block = record.get("block") or {}
    block_number = record.get("block_number", block.get("block_number"))
    if record.get("errored"):
        return ErroredResult(
            deploy_id=deploy_id,
            reason=record.get("error_message") or "Deploy execution failed",
            block_number=block_number,
            block_hash=block.get("block_hash"),
            source="indexer",
        )
    return CompletedResult(
        deploy_id=deploy_id,
        block_hash=block.get("block_hash"),
        block_number=block_number,
        timestamp=record.get("timestamp") or block.get("timestamp"),
        source="indexer",
        transfers=record.get("transfers") or [],
    )


def _matches(deploy: Dict[str, Any], deploy_id: str) -> bool:
    return deploy_id in (deploy.get("sig"), deploy.get("signature"), deploy.get("deployId"))


class RecentBlocks:
    """
    The most recent blocks, fetched on first use and then shared.

    A polling pass hands one instance to every resolution it runs, so N
    pending deploys cost a single block fetch. A failed fetch is remembered
    and raised again rather than retried.
    """

    def __init__(self, node: NodeClient, depth: int):
        self.node = node
        self.depth = depth
        self._lock = threading.Lock()
        self._blocks: Optional[List[Dict[str, Any]]] = None
        self._error: Optional[NodeError] = None

    def get(self) -> List[Dict[str, Any]]:
        with self._lock:
            if self._blocks is None and self._error is None:
                try:
                    self._blocks = self.node.get_blocks(self.depth)
                except NodeError as e:
                    self._error = e
            if self._error is not None:
                raise self._error
            return self._blocks


class ConfirmationResolver:
    """Answers "did this deploy make it into a block?"."""

    def __init__(
        self,
        node: NodeClient,
        indexer: IndexerClient,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.node = node
        self.indexer = indexer
        self.settings = settings or Settings.from_env()
        self.logger = logger or logging.getLogger(__name__)
        self.steps: Sequence[Step] = (self.query_indexer, self.scan_recent_blocks)

    def recent_blocks(self) -> RecentBlocks:
        """A block snapshot that several :meth:`resolve` calls can share"""
        return RecentBlocks(self.node, self.settings.fallback_block_depth)

    def resolve(self, deploy_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                blocks: Optional[RecentBlocks] = None) -> ConfirmationResult:
        """
        Determine the status of a deploy.

        Args:
            deploy_id: Deploy id returned at submission
            max_attempts: Indexer lookups before falling back to the block scan
            blocks: Shared block snapshot; fetched for this call when omitted

        Returns:
            CompletedResult, ErroredResult, or PendingResult (``unknown`` set
            when no source could confirm anything)
        """
        for step in self.steps:
            result = step(deploy_id, max_attempts, blocks)
            if result is not None:
                return result
        return PendingResult(
            deploy_id=deploy_id,
            message="Deploy status check unavailable. The deploy may still be processing.",
            unknown=True,
        )

    def query_indexer(self, deploy_id: str, max_attempts: int,
                      blocks: Optional[RecentBlocks] = None) -> Optional[ConfirmationResult]:
        """
        Poll the indexer up to ``max_attempts`` times.

        Returns None, so the pipeline moves on, when attempts run out or the
        indexer is unavailable; an unavailable indexer is not retried.
        """
        for attempt in range(1, max_attempts + 1):
            try:
                record = self.indexer.find_deployment(deploy_id)
            except IndexerUnavailable as e:
                self.logger.warning(f"Indexer unavailable for {short_id(deploy_id)}, scanning blocks: {e.reason}")
                return None

            if record is not None:
                result = result_from_indexer_record(deploy_id, record)
                self.logger.info(
                    f"Deploy {short_id(deploy_id)} found in block {result.block_number} "
                    f"after {attempt} attempt(s)"
                )
                return result

            self.logger.debug(f"Deploy {short_id(deploy_id)} not indexed yet ({attempt}/{max_attempts})")
            if attempt < max_attempts:
                time.sleep(INDEXER_RETRY_DELAY)

        return None

    def scan_recent_blocks(self, deploy_id: str, max_attempts: int,
                           blocks: Optional[RecentBlocks] = None) -> Optional[ConfirmationResult]:
        """Look for the deploy in the most recent blocks of the read-only node"""
        if blocks is None:
            blocks = self.recent_blocks()
        try:
            recent = blocks.get()
        except NodeError as e:
            self.logger.warning(f"Block scan for {short_id(deploy_id)} failed: {e}")
            return None

        for block in recent:
            for deploy in block.get("deploys") or []:
                if not _matches(deploy, deploy_id):
                    continue
                self.logger.info(f"Deploy {short_id(deploy_id)} found in block {block.get('blockHash')} by block scan")
                if deploy.get("errored"):
                    return ErroredResult(
                        deploy_id=deploy_id,
                        reason=deploy.get("systemDeployError") or "Deploy execution failed",
                        block_number=block.get("blockNumber"),
                        block_hash=block.get("blockHash"),
                        source="blocks",
                    )
                return CompletedResult(
                    deploy_id=deploy_id,
                    block_hash=block.get("blockHash"),
                    block_number=block.get("blockNumber"),
                    timestamp=block.get("timestamp"),
                    source="blocks",
                    cost=deploy.get("cost"),
                )

        return None
