"""String-keyed stores for persisted station state.

The rain aggregator keeps its windows in three opaque string blobs. The
station uses a JSON file so the windows survive a restart; tests use the
in-memory store.
"""

import json
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional

from aprswx.utils import print_debug, print_error


class KeyValueStore(ABC):
    """Minimal get/set store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None when the key is unset."""

    @abstractmethod
    def set(self, key: str, value: Optional[str]) -> None:
        """Store a string; None removes the key."""


class MemoryStore(KeyValueStore):
    """Dictionary-backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value


class JsonFileStore(KeyValueStore):
    """Store persisted as a flat JSON object on disk.

    Every set() rewrites the file (write to temp, then rename) so a crash
    never leaves a half-written file behind.
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)
        self.data: Dict[str, str] = {}
        self.load()

    def load(self):
        """Load the store file; a missing or unreadable file starts empty."""
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r") as f:
                saved = json.load(f)
            if isinstance(saved, dict):
                self.data = {str(k): v for k, v in saved.items() if isinstance(v, str)}
            print_debug(f"Loaded state from {self.path}", level=6)
        except (OSError, ValueError) as e:
            print_error(f"Could not load state file {self.path}: {e}")

    def save(self):
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(self.data, f, indent=2)
            os.replace(tmp_path, self.path)
            print_debug(f"Saved state to {self.path}", level=6)
        except OSError as e:
            print_error(f"Could not save state file {self.path}: {e}")

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value
        self.save()
