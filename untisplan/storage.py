"""
Persistent key-value storage for local client state.

Every key lives in its own JSON file inside the data directory:

    ~/.untisplan/sessionInfo.json
    ~/.untisplan/cachedSchedule.json
    ~/.untisplan/filteredClasses.json
    ...

Design rationale:
- one file per key means independent keys never overwrite each other
  (filters and colors can be replaced separately)
- writes go to a temporary file first and are then renamed over the target,
  so a reader sees either the old or the new value, never half a file
- concurrent writers on the same key: last write wins
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from untisplan.config import Config

logger = logging.getLogger(__name__)


def _default_root() -> Path:
    """
    Return the default data directory.

    Using a function instead of a constant makes testing easier,
    because tests can pass their own directory.
    """
    return Path(Config.DATA_DIR)


class JsonFileStore:
    """
    get/set/remove with JSON-serializable values.

    Read and write failures are logged and treated as "value absent";
    they never propagate into the calling flow.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else _default_root()

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)

        # First run: nothing stored yet
        if not path.exists():
            return default

        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s, treating it as absent: %s", path.name, exc)
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Replace the stored value. Returns False if the value could not be written.
        """
        path = self._path(key)
        tmp_name = None
        try:
            text = json.dumps(value, indent=2, ensure_ascii=False)
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.root)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
            tmp_name = None
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Could not write %s: %s", path.name, exc)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove %s: %s", path.name, exc)
