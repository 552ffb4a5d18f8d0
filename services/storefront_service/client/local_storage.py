"""Device-local persistence for guest state, one JSON document per key."""

import json
import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from libs.common.logging import get_logger

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStorageCorrupt(Exception):
    """A stored document exists but cannot be decoded."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Local storage entry '{key}' is corrupt")


class LocalStorage:
    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise LocalStorageCorrupt(key) from exc

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(value, default=str), encoding="utf-8")
        # Atomic replace
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
