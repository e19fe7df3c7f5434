"""
Source archiver module.

Streams a directory tree as a tar.gz archive into a writable file object,
so the uploader can pipe it straight into Cloud Storage.
"""

from .archiver import ArchiveStats, iter_tree, write_archive

__all__ = ["ArchiveStats", "iter_tree", "write_archive"]
