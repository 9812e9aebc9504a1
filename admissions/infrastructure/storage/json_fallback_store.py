"""
Adapter: JSON File Fallback Store

One JSON file per draft key inside a directory. Writes go through a
temporary file and an atomic rename so a crash never leaves half a
snapshot behind.
"""

import json
import logging
import os
import re
from pathlib import Path

from admissions.core.interfaces.local_fallback_store import FallbackStoreError, ILocalFallbackStore

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileFallbackStore(ILocalFallbackStore):

    def __init__(self, directory: str):
        self._dir = Path(directory)

    def _file_for(self, key: str) -> Path:
        return self._dir / f"draft_{_UNSAFE.sub('_', key)}.json"

    def write(self, key: str, payload: dict) -> None:
        target = self._file_for(key)
        tmp = target.with_suffix(".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, default=str), encoding="utf-8")
            os.replace(tmp, target)
        except (OSError, TypeError, ValueError) as e:
            raise FallbackStoreError(f"Could not write local copy {key}: {e}") from e
        logger.debug(f"Local copy {key} written to {target}")

    def read(self, key: str) -> dict | None:
        target = self._file_for(key)
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise FallbackStoreError(f"Could not read local copy {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._file_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise FallbackStoreError(f"Could not delete local copy {key}: {e}") from e
