"""
Streaming tar+gzip archiver.

Walks a directory tree and writes a gzip-compressed tar stream into any
writable binary file object (a Cloud Storage blob writer in production, a
BytesIO in tests). Nothing is buffered beyond tarfile's own block size.

Example usage:
    >>> import io
    >>> from cdbuild.archiver import write_archive
    >>> buffer = io.BytesIO()
    >>> stats = write_archive("./app", buffer)
    >>> print(f"{stats.files} files, {stats.bytes_read} bytes")
"""

import os
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Tuple, Union

from cdbuild.errors import ArchiveError
from cdbuild.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

# Streaming gzip mode: the target is never seeked
ARCHIVE_MODE = "w|gz"


class _TargetWriteError(Exception):
    """Wraps a failure of the target stream so it is not taken for a read error."""


class _GuardedTarget:
    """Write-only view of the target stream that tags its failures."""

    def __init__(self, fileobj: BinaryIO) -> None:
        self._fileobj = fileobj

    def write(self, data: bytes) -> int:
        try:
            return self._fileobj.write(data)
        except Exception as error:
            raise _TargetWriteError() from error


@dataclass
class ArchiveStats:
    """
    Summary of a written archive.

    Attributes:
        files: Regular files and links added
        directories: Directories added
        bytes_read: Total size of regular file contents read from disk
    """

    files: int = 0
    directories: int = 0
    bytes_read: int = 0


def _raise_walk_error(error: OSError) -> None:
    raise error


def iter_tree(root: Path) -> Iterator[Tuple[Path, str]]:
    """
    Yield ``(path, arcname)`` for everything under root, root excluded.

    Order is deterministic: the entries of each directory in sorted name
    order, every directory before its children. Symlinked directories are
    yielded as links and not descended into.
    """
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        dirnames.sort()
        current = Path(dirpath)
        for entry in sorted(dirnames + filenames):
            path = current / entry
            yield path, path.relative_to(root).as_posix()


def _add_entry(tar: tarfile.TarFile, path: Path, arcname: str, stats: ArchiveStats) -> None:
    tarinfo = tar.gettarinfo(str(path), arcname=arcname)
    if tarinfo is None:
        # Sockets have no tar representation
        logger.warning(f"Skipping special file: {arcname}")
        return
    if tarinfo.isreg():
        with open(path, "rb") as handle:
            tar.addfile(tarinfo, handle)
        stats.files += 1
        stats.bytes_read += tarinfo.size
    elif tarinfo.isdir():
        tar.addfile(tarinfo)
        stats.directories += 1
    elif tarinfo.issym() or tarinfo.islnk():
        tar.addfile(tarinfo)
        stats.files += 1
    else:
        logger.warning(f"Skipping special file: {arcname}")


@log_function_call
def write_archive(root: Union[str, Path], fileobj: BinaryIO) -> ArchiveStats:
    """
    Write a tar.gz stream of every entry under ``root`` into ``fileobj``.

    Paths are stored relative to root. File metadata (type, size, mode,
    mtime, ownership) comes from ``tarfile.TarFile.gettarinfo``.

    The compression layer is always closed before returning or raising, so
    everything tarfile produced has been handed to ``fileobj``. ``fileobj``
    itself is never closed here: on success the caller finalizes it, on
    failure the caller must discard it, because the stream then has no
    end-of-archive blocks.

    Args:
        root: Directory to archive
        fileobj: Writable binary stream receiving the compressed archive

    Returns:
        ArchiveStats describing what was written

    Raises:
        ArchiveError: If root is not a directory or any entry cannot be read.
            The first error encountered aborts the walk.

    Errors raised by ``fileobj.write`` propagate unchanged, never as
    ArchiveError.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise ArchiveError(f"Source path is not a directory: {root_path}")

    stats = ArchiveStats()
    logger.debug(f"Archiving {root_path.resolve()}")

    try:
        # On error TarFile.__exit__ closes the gzip layer but skips end blocks
        with tarfile.open(fileobj=_GuardedTarget(fileobj), mode=ARCHIVE_MODE) as tar:
            for path, arcname in iter_tree(root_path):
                _add_entry(tar, path, arcname, stats)
    except _TargetWriteError as error:
        # Target failures belong to the caller, unchanged
        raise error.__cause__ from None
    except OSError as error:
        raise ArchiveError(f"Could not archive {root_path}: {error}") from error

    logger.debug(
        f"Archived {stats.files} files and {stats.directories} directories "
        f"({stats.bytes_read} bytes)"
    )
    return stats
