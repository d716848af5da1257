#!/usr/bin/env python3
"""
Check which endpoints of a network are reachable.

Usage:
    python network_check.py [network]
"""
import sys

from asichain_sdk import IndexerClient, IndexerUnavailable, NetworkConfig, NodeClient, NodeRole
from asichain_sdk.version import __version__


def run_check(network_id):
    """Probe every configured endpoint of ``network_id``; returns True if the validator answers."""
    print(f"ASI chain SDK v{__version__} - checking {network_id}")
    network = NetworkConfig.get_network(network_id)

    node = NodeClient(network)
    indexer = IndexerClient(network.indexer_url)
    try:
        for role in NodeRole:
            if node.endpoint(role) is None:
                continue
            status = "reachable" if node.is_accessible(role) else "UNREACHABLE"
            print(f"  {node.describe(role)}: {status}")

        if indexer.configured:
            try:
                indexer.probe()
                print(f"  Indexer at {indexer.url}: reachable")
            except IndexerUnavailable as e:
                print(f"  Indexer at {indexer.url}: {e.reason}")

        print(f"  Latest block: {node.get_latest_block_number()}")
        return node.is_accessible(NodeRole.VALIDATOR)
    except Exception as e:
        print(f"Check failed: {e}")
        return False
    finally:
        node.close()
        indexer.close()


if __name__ == "__main__":
    success = run_check(sys.argv[1] if len(sys.argv) > 1 else "devnet")
    sys.exit(0 if success else 1)
