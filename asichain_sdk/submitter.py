"""
Deploy submission: build, sign, send, extract the deploy id.
"""
import logging
import time
from typing import Callable, Optional

from .config import DEFAULT_PHLO_LIMIT, DEFAULT_PHLO_PRICE
from .exceptions import AsiChainError, DeployFailed
from .models import Deploy
from .node.client import NodeClient
from .node.exceptions import ApiError
from .signer import PrivateKeyLike, sign
from .terms import transfer_term
from .utils import extract_deploy_id, short_id

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class DeploySubmitter:
    """
    Turns Rholang into a submitted deploy.

    Nothing is recorded anywhere by this class; the caller persists state
    only once a deploy id has been returned.
    """

    def __init__(
        self,
        node: NodeClient,
        shard_id: str = "root",
        phlo_price: int = DEFAULT_PHLO_PRICE,
        clock: Callable[[], int] = _now_ms,
        logger: Optional[logging.Logger] = None,
    ):
        self.node = node
        self.shard_id = shard_id
        self.phlo_price = phlo_price
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def build_deploy(self, term: str, phlo_limit: int, valid_after_block_number: int) -> Deploy:
        return Deploy(
            term=term,
            phlo_limit=phlo_limit,
            phlo_price=self.phlo_price,
            valid_after_block_number=valid_after_block_number,
            timestamp=self._clock(),
            shard_id=self.shard_id,
        )

    def submit(self, term: str, private_key: PrivateKeyLike,
               phlo_limit: int = DEFAULT_PHLO_LIMIT) -> str:
        """
        Sign and send a deploy.

        Args:
            term: Rholang source
            private_key: Signing key, used only for this call
            phlo_limit: Maximum phlo the deploy may consume

        Returns:
            Deploy id assigned by the node

        Raises:
            DeployFailed: If any step fails; the original error is chained
        """
        if phlo_limit <= 0:
            raise DeployFailed("phlo limit must be positive")

        try:
            block_number = self.node.get_latest_block_number()
            signed = sign(self.build_deploy(term, phlo_limit, block_number), private_key)
            response = self.node.deploy(signed)
        except ApiError as e:
            self.logger.error(f"Node rejected deploy: {e}")
            raise DeployFailed(str(e.body)) from e
        except AsiChainError as e:
            self.logger.error(f"Deploy submission failed: {e}")
            raise DeployFailed(str(e)) from e

        deploy_id = extract_deploy_id(response)
        if not deploy_id:
            raise DeployFailed(f"Unexpected deploy response: {response!r}")

        self.logger.info(f"Deploy {short_id(deploy_id)} submitted (valid after block {block_number})")
        return deploy_id

    def transfer(self, from_address: str, to_address: str, amount: int,
                 private_key: PrivateKeyLike, phlo_limit: int = DEFAULT_PHLO_LIMIT) -> str:
        """
        Submit a vault transfer of ``amount`` atomic units.

        Raises:
            DeployFailed: If the addresses or amount are invalid, or submission fails
        """
        try:
            term = transfer_term(from_address, to_address, amount)
        except ValueError as e:
            raise DeployFailed(str(e)) from e
        return self.submit(term, private_key, phlo_limit)
