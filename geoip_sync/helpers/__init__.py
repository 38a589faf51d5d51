from __future__ import annotations

from .file import decompress, md5_file, strip_archive_suffix
from .retry import Exhausted, RetryResult, Success, retry_async

__all__ = [
    "Exhausted",
    "RetryResult",
    "Success",
    "decompress",
    "md5_file",
    "retry_async",
    "strip_archive_suffix",
]
