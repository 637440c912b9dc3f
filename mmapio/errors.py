"""Error types raised by mmapio.

Library acquisition failures (platform, manifest, download, binding) derive
from :class:`AcquisitionError`; per-handle failures derive directly from
:class:`MmapError`.
"""


class MmapError(RuntimeError):
    """Base class for every error raised by mmapio."""


class UnsupportedPlatformError(MmapError, ValueError):
    """Raised when the running OS/CPU pair has no published native binary.

    :ivar os_name: Normalized OS label that was detected.
    :ivar arch: Normalized architecture label that was detected.
    """

    def __init__(self, message: str, *, os_name: str, arch: str) -> None:
        super().__init__(message)
        self.os_name: str = os_name
        self.arch: str = arch


class AcquisitionError(MmapError):
    """Raised when the native library cannot be located, verified, or bound."""


class ChecksumManifestError(AcquisitionError):
    """Raised when the checksum manifest file itself is malformed."""


class MissingChecksumEntryError(AcquisitionError):
    """Raised when an asset has no entry in the checksum manifest.

    :ivar asset: Asset file name that was looked up.
    """

    def __init__(self, asset: str) -> None:
        super().__init__(f"No checksum for {asset}")
        self.asset: str = asset


class ChecksumMismatchError(AcquisitionError):
    """Raised when asset bytes do not hash to the manifest digest.

    :ivar asset: Asset file name.
    :ivar expected: Digest from the manifest.
    :ivar actual: Digest computed from the bytes.
    :ivar source: Where the bytes came from (``cache`` or a URL).
    """

    def __init__(self, *, asset: str, expected: str, actual: str, source: str) -> None:
        super().__init__(
            f"Checksum mismatch for {asset} from {source}: expected {expected}, got {actual}"
        )
        self.asset: str = asset
        self.expected: str = expected
        self.actual: str = actual
        self.source: str = source


class DownloadError(AcquisitionError):
    """Raised when a release asset cannot be fetched.

    :ivar url: URL that was requested.
    :ivar status: HTTP status code, or ``None`` for transport errors.
    """

    def __init__(self, message: str, *, url: str, status: int | None = None) -> None:
        super().__init__(message)
        self.url: str = url
        self.status: int | None = status


class CacheError(AcquisitionError):
    """Raised when a verified library cannot be written to the cache.

    :ivar path: Cache entry path.
    """

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path: str = path


class LibraryLoadError(AcquisitionError):
    """Raised when neither the full nor the legacy symbol set can be bound.

    :ivar path: Library path that was loaded.
    """

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path: str = path


class MapOpenError(MmapError):
    """Raised when the native engine refuses to map a file.

    :ivar path: Path that was passed to the open call.
    :ivar operation: Native symbol that failed.
    """

    def __init__(self, *, path: str, operation: str) -> None:
        super().__init__(f"{operation} failed: {path}")
        self.path: str = path
        self.operation: str = operation


class OutOfBoundsError(MmapError, IndexError):
    """Raised before a native call when a range does not fit the mapping.

    :ivar offset: Requested start offset.
    :ivar length: Requested byte count.
    :ivar mapped_length: Length of the mapping.
    """

    def __init__(self, message: str, *, offset: int, length: int, mapped_length: int) -> None:
        super().__init__(message)
        self.offset: int = offset
        self.length: int = length
        self.mapped_length: int = mapped_length


class PartialTransferError(MmapError):
    """Raised when a bulk copy moves fewer bytes than requested.

    :ivar requested: Bytes requested.
    :ivar transferred: Bytes the native engine reported.
    """

    def __init__(self, message: str, *, requested: int, transferred: int) -> None:
        super().__init__(message)
        self.requested: int = requested
        self.transferred: int = transferred


class FlushError(MmapError):
    """Raised when the native flush reports a non-zero status.

    :ivar status: Native status code.
    """

    def __init__(self, message: str, *, status: int) -> None:
        super().__init__(message)
        self.status: int = status
