"""
Key-value stores backing the pending ledger.
"""
import json
import logging
import os
import stat
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import portalocker

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Narrow persistence interface: string keys and string values"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store, lost on exit"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"store values must be str, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore:
    """Thread-safe and process-safe JSON file store"""

    def __init__(self, store_path: Optional[str] = None):
        """
        Initialize the store.

        Args:
            store_path: Optional custom path; defaults to ``ASI_WALLET_STORE_PATH``
                or ``~/.asichain/wallet.json``
        """
        if store_path:
            self.store_path = Path(store_path)
        else:
            self.store_path = Path(os.environ.get(
                "ASI_WALLET_STORE_PATH",
                os.path.expanduser("~/.asichain/wallet.json"),
            ))
        self._ensure_file()

    def _ensure_file(self):
        directory = self.store_path.parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            if os.name == 'posix':
                os.chmod(directory, stat.S_IRWXU)  # 0700

        if not self.store_path.exists():
            with open(self.store_path, 'w') as f:
                json.dump({}, f)

        if os.name == 'posix':
            os.chmod(self.store_path, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    def _get_lock_path(self) -> str:
        return str(self.store_path) + '.lock'

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.store_path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning(f"Store file {self.store_path} is corrupt, treating it as empty")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        tmp_path = self.store_path.with_suffix(self.store_path.suffix + '.tmp')
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.store_path)
        if os.name == 'posix':
            os.chmod(self.store_path, stat.S_IRUSR | stat.S_IWUSR)

    def get(self, key: str) -> Optional[str]:
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"store values must be str, got {type(value).__name__}")
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with portalocker.Lock(self._get_lock_path(), timeout=10):
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)
