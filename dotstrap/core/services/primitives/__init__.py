"""
Idempotency primitives — safe to call any number of times.

Each primitive checks the end state first, reports ``skipped`` when it
already holds, otherwise does the minimal work and reports
``installed``, or reports ``failed``/``timeout`` without leaving
partial artifacts. None of them raise for operational failures.
"""

from dotstrap.core.services.primitives.download import download_file, extract_archive
from dotstrap.core.services.primitives.filesystem import ensure_directory, ensure_symlink
from dotstrap.core.services.primitives.packages import install_package
from dotstrap.core.services.primitives.repository import clone_or_update

__all__ = [
    "clone_or_update",
    "download_file",
    "ensure_directory",
    "ensure_symlink",
    "extract_archive",
    "install_package",
]
