"""Extraction of the state snapshot document from a verified-proof archive."""

from __future__ import annotations

import io
import posixpath
import zipfile
import zlib
from typing import Optional

from pydantic import ValidationError

from ...domain.entities import StateSnapshot
from ...domain.errors import SnapshotCorruptError, SnapshotMissingError

SNAPSHOT_FILE_NAME = "state_snapshot.json"


def find_snapshot_member(archive: zipfile.ZipFile) -> Optional[str]:
    """Return the first entry whose basename is state_snapshot.json, any case."""
    for name in archive.namelist():
        if name.endswith("/"):
            continue
        if posixpath.basename(name).lower() == SNAPSHOT_FILE_NAME:
            return name
    return None


def extract_state_snapshot(archive_bytes: bytes) -> StateSnapshot:
    """Open a proof ZIP and parse the state snapshot it carries.

    Raises:
        SnapshotMissingError: If no state_snapshot.json entry exists.
        SnapshotCorruptError: If the archive or the JSON document is invalid.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except zipfile.BadZipFile as e:
        raise SnapshotCorruptError(f"Proof archive is not a valid ZIP file: {e}") from e

    with archive:
        member = find_snapshot_member(archive)
        if member is None:
            raise SnapshotMissingError(
                f"{SNAPSHOT_FILE_NAME} not found in proof ZIP file"
            )
        try:
            raw = archive.read(member)
        except (zipfile.BadZipFile, zlib.error, OSError) as e:
            raise SnapshotCorruptError(f"Could not read {member}: {e}") from e

    try:
        return StateSnapshot.model_validate_json(raw)
    except ValidationError as e:
        raise SnapshotCorruptError(f"Invalid {SNAPSHOT_FILE_NAME}: {e}") from e
