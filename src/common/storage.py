"""
Persistent key-value storage for the signage player.
Holds the pairing credentials and the last accepted playlist in one JSON file.
"""

import json
import threading
from pathlib import Path
from typing import Dict, Optional

from src.common.logger import setup_logger

logger = setup_logger(__name__)

# Fixed key names shared with the pairing flow
KEY_SCREEN_ID = "screenId"
KEY_SCREEN_TOKEN = "screenToken"
KEY_PLAYLIST = "playlist"


class KeyValueStore:
    """String key-value store persisted as a JSON object on disk."""

    def __init__(self, path: str):
        """
        Initialize the store.

        Args:
            path: Path of the JSON file backing the store
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}

        if self.path.exists():
            self._data = self._load_json()

    def _load_json(self) -> Dict[str, str]:
        """
        Load the backing JSON file.

        Returns:
            Parsed data, or an empty dict if the file is unreadable
        """
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read store %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed store %s", self.path)
            return {}

        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _save_json(self, data: Dict[str, str]) -> None:
        """Write the store atomically via a temp file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        with open(temp_path, 'w') as f:
            json.dump(data, f, indent=2)
        temp_path.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        """Get a stored value, or None if the key is absent."""
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Store a value and persist it."""
        with self._lock:
            data = dict(self._data)
            data[key] = str(value)
            self._save_json(data)
            self._data = data

    def remove(self, key: str) -> None:
        """Remove a key if present and persist the change."""
        with self._lock:
            if key in self._data:
                data = {k: v for k, v in self._data.items() if k != key}
                self._save_json(data)
                self._data = data

    def reload(self) -> None:
        """Re-read the backing file, dropping unsaved in-memory state."""
        with self._lock:
            self._data = self._load_json() if self.path.exists() else {}

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __repr__(self) -> str:
        """String representation."""
        return f"KeyValueStore(path={self.path})"
