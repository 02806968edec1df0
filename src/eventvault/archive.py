"""
ZIP export of vault assets.

Objects that cannot be fetched are skipped and reported; an export in
which nothing could be fetched writes no archive at all.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from .interfaces import BlobStore
from .models import MediaAsset

logger = logging.getLogger("eventvault.archive")


class ArchiveReport(BaseModel):
    path: Optional[Path] = None
    written: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


def _unique_name(name: str, used: set[str]) -> str:
    if name not in used:
        return name
    stem, dot, suffix = name.rpartition(".")
    if not dot:
        stem, suffix = name, ""
    n = 1
    while True:
        candidate = f"{stem} ({n}).{suffix}" if suffix else f"{stem} ({n})"
        if candidate not in used:
            return candidate
        n += 1


async def export_archive(
    blobs: BlobStore,
    assets: Iterable[MediaAsset],
    destination: Path,
    folder_name: str = "Selected_Files",
) -> ArchiveReport:
    """Download assets into a ZIP file under ``folder_name/``.

    Args:
        blobs: Blob store to fetch from.
        assets: Assets to include.
        destination: Path of the ZIP file to write.
        folder_name: Top-level directory inside the archive.

    Returns:
        ArchiveReport with written and skipped file names.
    """
    report = ArchiveReport()
    contents: list[tuple[str, bytes]] = []
    used: set[str] = set()

    for asset in assets:
        try:
            data = await blobs.download(asset.storage_path)
        except Exception as exc:
            logger.warning("Skipping %s in archive: %s", asset.file_name, exc)
            report.skipped.append(asset.file_name)
            continue
        name = _unique_name(asset.file_name, used)
        used.add(name)
        contents.append((name, data))

    if not contents:
        logger.info("Nothing to archive, no file written")
        return report

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in contents:
            zf.writestr(f"{folder_name}/{name}", data)
            report.written.append(name)

    report.path = destination
    logger.info("Archived %d file(s) to %s", len(report.written), destination)
    return report
