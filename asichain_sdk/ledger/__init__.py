"""
Pending ledger for the ASI chain SDK.

Tracks submitted transactions until the chain reflects them, so the balance
shown to the user already includes in-flight debits.
"""
from .ledger import STORAGE_KEY, PendingLedger
from .store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = ['PendingLedger', 'KeyValueStore', 'MemoryStore', 'JsonFileStore', 'STORAGE_KEY']
