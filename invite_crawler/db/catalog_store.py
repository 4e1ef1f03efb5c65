from __future__ import annotations

import logging
import os
import stat
import tempfile
from typing import List, Optional, Sequence

from tenacity import RetryError

from invite_crawler.errors import CatalogCorruptionError, CatalogSaveError
from invite_crawler.models.entry import Entry
from invite_crawler.services.recovery import PromptRetry, SaveRetryPolicy
from .codecs import CatalogCodec, CodecError, VersionedCodec

logger = logging.getLogger(__name__)


DEFAULT_CATALOG_PATH = "guilds.json"


class CatalogStore:
    """Durable record of every known entry, kept in a single file.

    load() returns entries sorted by id; a missing file is an empty catalog.
    save() replaces the whole file atomically and retries through the injected
    SaveRetryPolicy until the write lands.
    """

    def __init__(
        self,
        path: str = DEFAULT_CATALOG_PATH,
        *,
        codec: Optional[CatalogCodec] = None,
        retry: Optional[SaveRetryPolicy] = None,
    ) -> None:
        self.path = os.path.abspath(path)
        self.codec = codec or VersionedCodec()
        self.retry = retry or PromptRetry()

    def load(self) -> List[Entry]:
        try:
            with open(self.path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            logger.warning("Catalog file %s not found. STATUS: It will be created later.", self.path)
            return []
        except OSError as exc:
            raise CatalogCorruptionError(self.path, f"failed to open file: {exc}", unreadable=True) from exc

        try:
            entries = self.codec.decode(data)
        except CodecError as exc:
            raise CatalogCorruptionError(self.path, f"failed to deserialize data: {exc}") from exc
        return sorted(entries, key=lambda e: e.id)

    def write(self, entries: Sequence[Entry]) -> None:
        """One atomic write attempt: temp file, fsync, rename over the catalog."""
        data = self.codec.encode(list(entries))
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".catalog-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # mkstemp creates 0600; the catalog keeps whatever mode it had
            try:
                os.chmod(tmp_path, stat.S_IMODE(os.stat(self.path).st_mode))
            except FileNotFoundError:
                pass
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def _write_logged(self, entries: Sequence[Entry]) -> None:
        try:
            self.write(entries)
        except OSError as exc:
            logger.error("ERROR: Failed to save data to %s: %s", self.path, exc)
            raise

    def save(self, entries: Sequence[Entry]) -> int:
        """Write until it succeeds. Returns the number of attempts it took."""
        attempts = 0
        try:
            for attempt in self.retry.retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self._write_logged(entries)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise CatalogSaveError(f"gave up after {exc.last_attempt.attempt_number} attempts: {last}") from last
        logger.info("Saved %d entries to %s", len(entries), self.path)
        return attempts
