"""Output container assembly: thumbnail entries plus one manifest entry."""

from __future__ import annotations

import io
import json
import os
import tempfile
import threading
import zipfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from utils.logging import get_logger

from gallery_builder.definitions import ItemDefinition
from gallery_builder.errors import ArchiveError

LOGGER = get_logger(__name__, extra={"component": "archive"})

DEFAULT_MANIFEST_NAME = "definitions.json"


class ArchiveAssembler:
    """Own the gallery container while it is being built.

    Entries live in an ordered in-memory table until :meth:`finalize` writes
    the sealed ZIP. Every mutation takes the same lock, so worker threads may
    call :meth:`insert` concurrently.
    """

    def __init__(self, manifest_name: str = DEFAULT_MANIFEST_NAME) -> None:
        self._manifest_name = manifest_name
        self._entries: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def insert(self, name: str, data: bytes) -> None:
        """Add a named binary entry."""

        with self._lock:
            self._ensure_open()
            if name == self._manifest_name:
                raise ArchiveError(f"entry name {name!r} is reserved for the manifest")
            if name in self._entries:
                raise ArchiveError(f"entry {name!r} already exists")
            self._entries[name] = bytes(data)

    def remove(self, name: str) -> bool:
        """Delete an entry; returns ``False`` when there was nothing to delete."""

        with self._lock:
            self._ensure_open()
            return self._entries.pop(name, None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def finalize(self, definitions: Sequence[ItemDefinition], extension: str) -> bytes:
        """Write the manifest for ``definitions``, seal the container and return its bytes.

        Raises:
            ArchiveError: When called twice, or when the entry set does not match
                the manifest exactly.
        """

        with self._lock:
            self._ensure_open()

            expected = [definition.entry_name(extension) for definition in definitions]
            expected_set = set(expected)
            actual_set = set(self._entries)
            if len(expected_set) != len(expected) or expected_set != actual_set:
                missing = sorted(expected_set - actual_set)
                orphaned = sorted(actual_set - expected_set)
                raise ArchiveError(
                    f"manifest and entries diverge: missing={missing[:5]} orphaned={orphaned[:5]} "
                    f"duplicates={len(expected) - len(expected_set)}"
                )

            manifest = json.dumps(
                [definition.to_dict() for definition in definitions],
                ensure_ascii=False,
                separators=(",", ":"),
            )

            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, mode="w") as archive:
                for name, data in self._entries.items():
                    # Thumbnails are already compressed by their image codec.
                    archive.writestr(name, data, compress_type=zipfile.ZIP_STORED)
                archive.writestr(
                    self._manifest_name,
                    manifest.encode("utf-8"),
                    compress_type=zipfile.ZIP_DEFLATED,
                    compresslevel=9,
                )

            self._sealed = True
            payload = buffer.getvalue()

        LOGGER.info(
            "archive_finalized",
            extra={"entries": len(expected), "manifest": self._manifest_name, "bytes": len(payload)},
        )
        return payload

    def _ensure_open(self) -> None:
        if self._sealed:
            raise ArchiveError("archive is already finalized")


def write_archive(data: bytes, output_dir: Path, filename: str) -> Path:
    """Atomically write ``data`` to ``output_dir / filename``.

    The bytes go to a temporary file in the destination directory first and
    are moved into place with :func:`os.replace`, so readers never observe a
    partially written archive.
    """

    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_dir / filename

    fd, tmp_name = tempfile.mkstemp(prefix=f".{filename}.", suffix=".tmp", dir=output_dir)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    LOGGER.info("archive_written", extra={"path": str(destination), "bytes": len(data)})
    return destination


def read_manifest(
    archive: Path | bytes, manifest_name: str = DEFAULT_MANIFEST_NAME
) -> tuple[list[dict[str, Any]], list[str]]:
    """Return ``(manifest_rows, entry_names)`` for a sealed gallery archive.

    ``entry_names`` excludes the manifest entry itself.
    """

    source: Any = io.BytesIO(archive) if isinstance(archive, (bytes, bytearray)) else archive
    with zipfile.ZipFile(source) as handle:
        rows = json.loads(handle.read(manifest_name).decode("utf-8"))
        names = [name for name in handle.namelist() if name != manifest_name]
    return rows, names


__all__ = ["ArchiveAssembler", "DEFAULT_MANIFEST_NAME", "read_manifest", "write_archive"]
