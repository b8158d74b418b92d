from __future__ import annotations

import json
import os
import tempfile
import threading
from typing import Any, Dict, Optional, Protocol

from logger import get_logger, log_exception

logger = get_logger(__name__)

ORIGINALS_KEY = "redraft_originals"
DIFFS_KEY = "redraft_diffs"


class MetadataStore(Protocol):
    """Per-message state kept by the host: originals for undo, diff data for review."""

    def save_original(self, message_id: str, text: str) -> None: ...
    def get_original(self, message_id: str) -> Optional[str]: ...
    def pop_original(self, message_id: str) -> Optional[str]: ...
    def save_diff(self, message_id: str, original: str, changelog: Optional[str]) -> None: ...
    def get_diff(self, message_id: str) -> Optional[Dict[str, Any]]: ...
    def remove_diff(self, message_id: str) -> None: ...


class InMemoryMetadataStore:
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {ORIGINALS_KEY: {}, DIFFS_KEY: {}}
        self._lock = threading.RLock()

    def _changed(self) -> None:
        """Hook for persistent subclasses."""

    def save_original(self, message_id: str, text: str) -> None:
        with self._lock:
            self._data[ORIGINALS_KEY][str(message_id)] = text
            self._changed()

    def get_original(self, message_id: str) -> Optional[str]:
        with self._lock:
            return self._data[ORIGINALS_KEY].get(str(message_id))

    def pop_original(self, message_id: str) -> Optional[str]:
        with self._lock:
            text = self._data[ORIGINALS_KEY].pop(str(message_id), None)
            if text is not None:
                self._changed()
            return text

    def save_diff(self, message_id: str, original: str, changelog: Optional[str]) -> None:
        with self._lock:
            self._data[DIFFS_KEY][str(message_id)] = {"original": original, "changelog": changelog or None}
            self._changed()

    def get_diff(self, message_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._data[DIFFS_KEY].get(str(message_id))
            return dict(entry) if entry else None

    def remove_diff(self, message_id: str) -> None:
        with self._lock:
            if self._data[DIFFS_KEY].pop(str(message_id), None) is not None:
                self._changed()


class JsonMetadataStore(InMemoryMetadataStore):
    """File-backed store; the whole document is rewritten atomically on every change."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path
        directory = os.path.dirname(os.path.abspath(path))
        try:
            os.makedirs(directory, exist_ok=True)
        except Exception as e:
            # Surface configuration errors early
            log_exception("METADATA_STORE_INIT", e)
            raise
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable metadata file {self.path}: {e}")
            return
        if isinstance(raw, dict):
            for key in (ORIGINALS_KEY, DIFFS_KEY):
                if isinstance(raw.get(key), dict):
                    self._data[key] = {str(k): v for k, v in raw[key].items()}

    def _changed(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".redraft-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except Exception as e:
            log_exception("METADATA_STORE_WRITE", e)
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise
