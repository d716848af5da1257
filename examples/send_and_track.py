#!/usr/bin/env python3
"""
Example of sending ASI and tracking the transfer until it is confirmed.
"""
import logging
import os
import time

from asichain_sdk import (
    Account,
    JsonFileStore,
    NetworkConfig,
    WalletClient,
    address_from_private_key,
    format_balance,
)
from asichain_sdk.signer import public_key_from_private_key

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class EnvKeyProvider:
    """Unlocks the single account whose key is in PRIVATE_KEY"""

    def __init__(self, private_key):
        self.private_key = private_key

    def unlock(self, account_id, password):
        return self.private_key if password == os.environ.get("WALLET_PASSWORD", "") else None


def main():
    """
    Demonstrate a transfer with optimistic balance display.

    This example shows how to:
    1. Initialize the client for a named network
    2. Show a balance that already includes the pending debit
    3. Wait for the confirmation and watch the events
    """
    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    RECIPIENT = os.environ.get("RECIPIENT")
    AMOUNT = os.environ.get("AMOUNT", "1")
    NETWORK = os.environ.get("NETWORK", "devnet")

    if not PRIVATE_KEY or not RECIPIENT:
        print("ERROR: PRIVATE_KEY and RECIPIENT environment variables are required")
        return

    print("Available networks:")
    for network_name in NetworkConfig.list_networks():
        print(f"  - {network_name}")
    print()

    account = Account(
        id="main",
        name="Main",
        address=address_from_private_key(PRIVATE_KEY),
        public_key=public_key_from_private_key(PRIVATE_KEY),
    )

    with WalletClient(
        network=NETWORK,
        key_provider=EnvKeyProvider(PRIVATE_KEY),
        accounts=[account],
        store=JsonFileStore(),
    ) as client:
        client.events.on(
            "balance_changed",
            lambda account_id, balance: print(f"[{account_id}] balance now {format_balance(balance)}"),
        )
        client.events.on(
            "deploy_failed",
            lambda deploy_id, entry, result: print(f"Deploy {deploy_id} failed: {result.reason}"),
        )

        print(f"Sender: {account.address}")
        print(f"Balance: {format_balance(client.get_display_balance(account))}")

        try:
            deploy_id = client.submit_send(account, RECIPIENT, AMOUNT, os.environ.get("WALLET_PASSWORD", ""))
        except Exception as e:
            print(f"Error sending: {str(e)}")
            return

        print(f"Deploy submitted: {deploy_id}")
        print(f"Balance (pending applied): {format_balance(client.get_display_balance(account))}")

        result = client.wait_for_confirmation(deploy_id)
        if result.status == "completed":
            print(f"Confirmed in block {result.block_number} ({result.block_hash})")
        elif result.status == "errored":
            print(f"Deploy failed: {result.reason}")
        else:
            print(result.message)
            print("Still pending; starting background polling. Press Ctrl+C to stop.")
            client.start_polling()
            try:
                while client.ledger.get(deploy_id) is not None and client.polling.is_active:
                    time.sleep(5)
            except KeyboardInterrupt:
                pass


if __name__ == "__main__":
    main()
