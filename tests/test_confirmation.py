"""
Tests for the confirmation resolver.
"""
from unittest.mock import MagicMock, patch

import pytest

from asichain_sdk.config import Settings
from asichain_sdk.confirmation import (
    INDEXER_RETRY_DELAY,
    ConfirmationResolver,
    RecentBlocks,
    result_from_indexer_record,
)
from asichain_sdk.models import CompletedResult, ErroredResult, PendingResult
from asichain_sdk.node import IndexerClient, IndexerUnavailable, NetworkError, NodeClient
from asichain_sdk.node.exceptions import NodeTimeoutError
from conftest import INDEXER_URL, READ_ONLY_URL

DEPLOY_ID = "3045022100aabbccddeeff"


def block_with(deploy, number=42):
    return {
        "blockHash": f"hash-{number}",
        "blockNumber": number,
        "timestamp": 1700000000000,
        "deploys": [{"sig": "3044unrelated"}, deploy],
    }


@pytest.fixture
def node():
    node = MagicMock(spec=NodeClient)
    node.get_blocks.return_value = []
    return node


@pytest.fixture
def indexer():
    indexer = MagicMock(spec=IndexerClient)
    indexer.find_deployment.return_value = None
    return indexer


@pytest.fixture
def resolver(node, indexer):
    return ConfirmationResolver(node, indexer, settings=Settings(fallback_block_depth=10))


class TestIndexerRecords:

    def test_completed_record(self):
        record = {
            "deploy_id": DEPLOY_ID,
            "errored": False,
            "block_number": 7,
            "timestamp": 123,
            "transfers": [{"amount_asi": "1"}],
            "block": {"block_number": 7, "block_hash": "h7"},
        }
        result = result_from_indexer_record(DEPLOY_ID, record)

        assert isinstance(result, CompletedResult)
        assert result.block_hash == "h7"
        assert result.block_number == 7
        assert result.transfers == [{"amount_asi": "1"}]

    def test_errored_record_without_message(self):
        result = result_from_indexer_record(DEPLOY_ID, {"errored": True, "block_number": 9})

        assert isinstance(result, ErroredResult)
        assert result.reason == "Deploy execution failed"
        assert result.source == "indexer"


class TestResolve:

    def test_indexer_answers_first(self, resolver, indexer, node):
        indexer.find_deployment.return_value = {
            "errored": True, "error_message": "Insufficient funds", "block_number": 3,
        }

        result = resolver.resolve(DEPLOY_ID)

        assert isinstance(result, ErroredResult)
        assert result.reason == "Insufficient funds"
        node.get_blocks.assert_not_called()

    def test_retries_indexer_then_falls_back(self, resolver, indexer, node):
        node.get_blocks.return_value = [block_with({"sig": DEPLOY_ID, "cost": 1500})]

        with patch("asichain_sdk.confirmation.time.sleep") as sleep:
            result = resolver.resolve(DEPLOY_ID, max_attempts=3)

        assert indexer.find_deployment.call_count == 3
        # no delay before the first attempt nor after the last
        assert sleep.call_count == 2
        sleep.assert_called_with(INDEXER_RETRY_DELAY)

        assert isinstance(result, CompletedResult)
        assert result.source == "blocks"
        assert result.block_number == 42
        assert result.cost == 1500
        node.get_blocks.assert_called_once_with(10)

    def test_found_on_later_attempt(self, resolver, indexer, node):
        indexer.find_deployment.side_effect = [None, None, {"errored": False, "block_number": 5}]

        result = resolver.resolve(DEPLOY_ID, max_attempts=5)

        assert isinstance(result, CompletedResult)
        assert indexer.find_deployment.call_count == 3
        node.get_blocks.assert_not_called()

    def test_indexer_timeout_goes_straight_to_blocks(self, resolver, indexer, node):
        indexer.find_deployment.side_effect = IndexerUnavailable(
            "request timed out", transport=NodeTimeoutError(INDEXER_URL)
        )
        node.get_blocks.return_value = [block_with({"signature": DEPLOY_ID})]

        result = resolver.resolve(DEPLOY_ID, max_attempts=20)

        assert indexer.find_deployment.call_count == 1
        assert isinstance(result, CompletedResult)
        assert result.block_number == 42

    def test_errored_deploy_in_block(self, resolver, indexer, node):
        indexer.find_deployment.side_effect = IndexerUnavailable("no indexer configured")
        node.get_blocks.return_value = [
            block_with({"deployId": DEPLOY_ID, "errored": True, "systemDeployError": "out of phlo"}, number=8)
        ]

        result = resolver.resolve(DEPLOY_ID)

        assert isinstance(result, ErroredResult)
        assert result.reason == "out of phlo"
        assert result.source == "blocks"
        assert result.block_number == 8

    def test_unknown_when_nothing_found(self, resolver):
        result = resolver.resolve(DEPLOY_ID, max_attempts=1)

        assert isinstance(result, PendingResult)
        assert result.unknown
        assert not result.is_final

    def test_unknown_when_block_scan_fails(self, resolver, indexer, node):
        indexer.find_deployment.side_effect = IndexerUnavailable("down", transport=NetworkError(INDEXER_URL))
        node.get_blocks.side_effect = NetworkError(READ_ONLY_URL)

        result = resolver.resolve(DEPLOY_ID)

        assert isinstance(result, PendingResult)
        assert result.unknown


class TestRecentBlocks:

    def test_shared_snapshot_fetches_once(self, resolver, node):
        node.get_blocks.return_value = [block_with({"sig": DEPLOY_ID})]
        blocks = resolver.recent_blocks()

        first = resolver.resolve(DEPLOY_ID, max_attempts=1, blocks=blocks)
        second = resolver.resolve("3045other", max_attempts=1, blocks=blocks)

        assert first.status == "completed"
        assert second.unknown
        node.get_blocks.assert_called_once_with(10)

    def test_failed_fetch_is_not_retried(self, node):
        node.get_blocks.side_effect = NetworkError(READ_ONLY_URL)
        blocks = RecentBlocks(node, depth=5)

        for _ in range(2):
            with pytest.raises(NetworkError):
                blocks.get()
        node.get_blocks.assert_called_once_with(5)
