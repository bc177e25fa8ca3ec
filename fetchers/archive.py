"""Archive extraction for space exports delivered as .zip files."""

import logging
import zipfile
from pathlib import Path
from typing import Union

from errors import MalformedArchiveError

logger = logging.getLogger('confluence_space_importer.fetchers.archive')


def extract_archive(archive_path: Union[str, Path], dest_dir: Union[str, Path]) -> Path:
    """
    Make an export available as a directory.

    Args:
        archive_path: Either an already-extracted export directory or a .zip file
        dest_dir: Where to extract zip archives

    Returns:
        Directory containing the export's manifest

    Raises:
        MalformedArchiveError: If the archive is missing, not a zip, or has
            members that would escape the destination
    """
    source = Path(archive_path)
    if source.is_dir():
        return source

    if not source.is_file():
        raise MalformedArchiveError(f"Archive not found: {source}")

    if not zipfile.is_zipfile(source):
        raise MalformedArchiveError(f"Not a zip archive: {source}")

    destination = Path(dest_dir).resolve()
    destination.mkdir(parents=True, exist_ok=True)

    try:
        with zipfile.ZipFile(source) as zf:
            for member in zf.infolist():
                target = (destination / member.filename).resolve()
                if target != destination and destination not in target.parents:
                    raise MalformedArchiveError(
                        f"Archive member escapes extraction directory: {member.filename}"
                    )
            zf.extractall(destination)
    except zipfile.BadZipFile as e:
        raise MalformedArchiveError(f"Corrupt zip archive {source}: {str(e)}") from e

    logger.info(f"Extracted {source.name} to {destination}")
    return _locate_manifest_root(destination)


def _locate_manifest_root(destination: Path) -> Path:
    """Exports zipped with a top-level folder keep the manifest one level down."""
    if (destination / 'entities.xml').is_file():
        return destination

    children = [child for child in destination.iterdir() if child.is_dir()]
    if len(children) == 1 and (children[0] / 'entities.xml').is_file():
        return children[0]

    return destination


__all__ = ['extract_archive']
