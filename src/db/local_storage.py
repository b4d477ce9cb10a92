import json
import os
from typing import Dict, Optional

from utils.logger import get_logger

_logger = get_logger(__name__)

CART_KEY = "greengo_cart"
CURRENT_USER_KEY = "greengo_currentUser"


class LocalStorage:
    """
    Synchronous string key-value storage scoped to this device.

    Backed by a json file when a path is given, otherwise kept in memory.
    Every write flushes the whole file. A missing or unreadable file reads as empty.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._items: Dict[str, str] = self._read_file() if path else {}

    def _read_file(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            _logger.warning(f"Local storage at {self.path} unreadable, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._items, f, indent=2)
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._items.clear()
        self._flush()

    def keys(self):
        return list(self._items.keys())

    # json helpers for the structured values stored here

    def get_json(self, key: str, default=None):
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning(f"Discarding malformed local value for '{key}'")
            return default

    def set_json(self, key: str, value) -> None:
        self.set_item(key, json.dumps(value))
