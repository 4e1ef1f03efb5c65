"""On-disk encodings of the catalog.

Version 1 is the first release's layout: a bare JSON list of
{"update_timestamp", "entry_id", "invite"} objects. Version 2 wraps the
entries in an envelope carrying a format tag and a version number.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from invite_crawler.models.entry import Entry


FORMAT_TAG = "invite-catalog"
CURRENT_VERSION = 2


class CodecError(ValueError):
    pass


class CatalogCodec:
    version: int = 0

    def encode(self, entries: Sequence[Entry]) -> bytes:
        raise NotImplementedError

    def decode(self, data: bytes) -> List[Entry]:
        raise NotImplementedError


def _loads(data: bytes) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CodecError(f"not valid JSON: {exc}") from exc


class JsonCatalogCodec(CatalogCodec):
    version = CURRENT_VERSION

    def encode(self, entries: Sequence[Entry]) -> bytes:
        doc = {
            "format": FORMAT_TAG,
            "version": self.version,
            "entries": [e.model_dump(mode="json") for e in entries],
        }
        return json.dumps(doc, ensure_ascii=False, indent=1).encode("utf-8")

    def decode(self, data: bytes) -> List[Entry]:
        doc = _loads(data)
        if not isinstance(doc, dict) or doc.get("format") != FORMAT_TAG:
            raise CodecError("missing catalog envelope")
        if doc.get("version") != self.version:
            raise CodecError(f"unsupported catalog version {doc.get('version')!r}")
        items = doc.get("entries")
        if not isinstance(items, list):
            raise CodecError("entries must be a list")
        try:
            return [Entry.model_validate(x) for x in items]
        except ValidationError as exc:
            raise CodecError(f"invalid entry: {exc}") from exc


class LegacyListCodec(CatalogCodec):
    version = 1

    def encode(self, entries: Sequence[Entry]) -> bytes:
        rows = [
            {"update_timestamp": e.observed_at, "entry_id": e.id, "invite": e.payload}
            for e in entries
        ]
        return json.dumps(rows, ensure_ascii=False).encode("utf-8")

    def decode(self, data: bytes) -> List[Entry]:
        rows = _loads(data)
        if not isinstance(rows, list):
            raise CodecError("legacy catalog must be a list")
        out: List[Entry] = []
        for row in rows:
            if not isinstance(row, dict):
                raise CodecError("legacy entry must be an object")
            try:
                out.append(_from_legacy(row))
            except (KeyError, ValidationError) as exc:
                raise CodecError(f"invalid legacy entry: {exc}") from exc
        return out


def _from_legacy(row: Dict[str, Any]) -> Entry:
    return Entry(id=row["entry_id"], observed_at=row["update_timestamp"], payload=row.get("invite") or {})


class VersionedCodec(CatalogCodec):
    """Reads any known version, writes the newest."""

    def __init__(self, writer: Optional[CatalogCodec] = None, readers: Optional[Sequence[CatalogCodec]] = None) -> None:
        self.writer = writer or JsonCatalogCodec()
        self.readers = list(readers) if readers is not None else [self.writer, LegacyListCodec()]
        self.version = self.writer.version

    def encode(self, entries: Sequence[Entry]) -> bytes:
        return self.writer.encode(entries)

    def decode(self, data: bytes) -> List[Entry]:
        errors: List[str] = []
        for reader in self.readers:
            try:
                return reader.decode(data)
            except CodecError as exc:
                errors.append(f"v{reader.version}: {exc}")
        raise CodecError("; ".join(errors))
