"""mmapio.

Bulk memory-mapped file I/O through a verified, platform-specific native
library loaded with ctypes.
"""

__version__: str = "0.1.0"

from mmapio.api import (  # noqa: E402
    MmapHandle,
    MmapIO,
    close,
    flush,
    mapped,
    open,
    open_write,
    open_write_with_size,
    read,
    write,
)
from mmapio.errors import (  # noqa: E402
    AcquisitionError,
    CacheError,
    ChecksumManifestError,
    ChecksumMismatchError,
    DownloadError,
    FlushError,
    LibraryLoadError,
    MapOpenError,
    MissingChecksumEntryError,
    MmapError,
    OutOfBoundsError,
    PartialTransferError,
    UnsupportedPlatformError,
)
from mmapio.native import InterfaceKind  # noqa: E402

__all__: list[str] = [
    "AcquisitionError",
    "CacheError",
    "ChecksumManifestError",
    "ChecksumMismatchError",
    "DownloadError",
    "FlushError",
    "InterfaceKind",
    "LibraryLoadError",
    "MapOpenError",
    "MissingChecksumEntryError",
    "MmapError",
    "MmapHandle",
    "MmapIO",
    "OutOfBoundsError",
    "PartialTransferError",
    "UnsupportedPlatformError",
    "__version__",
    "close",
    "flush",
    "mapped",
    "open",
    "open_write",
    "open_write_with_size",
    "read",
    "write",
]
