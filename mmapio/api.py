"""Memory-mapped file I/O over the native engine.

Handles are plain values. Bounds are checked here, before any native call,
and every copy is a single bulk call whose byte count must match the request.

Caller obligations, not checked at runtime:

- A handle has one owner. Concurrent ``read``/``write`` on the same handle
  race at the byte level like raw memory access; serialize externally if
  ordering matters.
- ``close`` is not idempotent. Closing twice, or using a handle after
  ``close``, is undefined behavior in native code.
- ``flush`` syncs the mapped view with the file; on some platforms that does
  not guarantee the data reached the storage device.
"""

from collections.abc import Callable, Iterator
import builtins
import contextlib
import ctypes
from dataclasses import dataclass
import mmap as _mmap
import os
import threading

from mmapio.errors import FlushError, MapOpenError, OutOfBoundsError, PartialTransferError
from mmapio.loader import LibraryLoader, default_loader
from mmapio.native import BoundInterface, InterfaceKind


@dataclass(frozen=True, slots=True)
class MmapHandle:
    """One active mapping.

    :ivar region: Opaque native region reference.
    :ivar length: Mapped length in bytes.
    :ivar path: Path the mapping was opened from.
    """

    region: int
    length: int
    path: str


class MmapIO:
    """Protocol operations bound to one :class:`~mmapio.loader.LibraryLoader`."""

    def __init__(self, loader: LibraryLoader | None = None) -> None:
        self._loader: LibraryLoader = loader if loader is not None else default_loader()

    @property
    def loader(self) -> LibraryLoader:
        return self._loader

    @property
    def interface_kind(self) -> InterfaceKind:
        """Symbol set bound by the loader (triggers acquisition)."""

        return self._loader.get().kind

    def open(self, path: str | os.PathLike[str]) -> MmapHandle:
        """Map an existing file read-only.

        :param path: File to map.
        :returns: Handle whose length is the file size.
        :raises MapOpenError: If the native engine cannot map the file.
        """

        lib: BoundInterface = self._loader.get()
        return _open_with(lib.mmap_open, "mmap_open", path)

    def open_write(self, path: str | os.PathLike[str]) -> MmapHandle:
        """Map a file read-write at its current size.

        :param path: File to map.
        :returns: Handle whose length is the file size.
        :raises MapOpenError: If the native engine cannot map the file.
        """

        lib: BoundInterface = self._loader.get()
        return _open_with(lib.mmap_open_write, "mmap_open_write", path)

    def open_write_with_size(self, path: str | os.PathLike[str], min_size: int) -> MmapHandle:
        """Map a file read-write after making it at least ``min_size`` bytes.

        With the legacy symbol set this resizes the file first and then maps
        it; the two steps are not atomic against other writers of the file.

        :param path: File to map (created if missing).
        :param min_size: Minimum file size in bytes.
        :returns: Handle of at least ``min_size`` bytes.
        :raises ValueError: If ``min_size`` is negative.
        :raises MapOpenError: If the file cannot be resized or mapped.
        """

        if min_size < 0:
            raise ValueError(f"min_size must be >= 0, got {min_size}")

        lib: BoundInterface = self._loader.get()
        if lib.mmap_open_write_with_size is not None:
            return _open_with(lib.mmap_open_write_with_size, "mmap_open_write_with_size", path, min_size)

        _ensure_file_size(path, min_size)
        return _open_with(lib.mmap_open_write, "mmap_open_write", path)

    def write(self, handle: MmapHandle, source: bytes | bytearray | memoryview, offset: int = 0) -> int:
        """Copy bytes into the mapping at ``offset``.

        :param handle: Open handle.
        :param source: Bytes to copy.
        :param offset: Destination offset in the mapping.
        :returns: Number of bytes copied (always ``len(source)``).
        :raises OutOfBoundsError: If the range does not fit the mapping.
        :raises PartialTransferError: If the native copy is short.
        """

        view: memoryview = _byte_view(source)
        length: int = view.nbytes
        _check_range(handle, offset, length, "write")
        if length == 0:
            return 0

        lib: BoundInterface = self._loader.get()
        src = source if isinstance(source, bytes) is True else _source_array(view)
        copied: int = int(lib.mmap_write(handle.region, offset, src, length))
        if copied != length:
            raise PartialTransferError(
                f"partial write: {copied} of {length}", requested=length, transferred=copied
            )
        return copied

    def read(self, handle: MmapHandle, destination: bytearray | memoryview, offset: int = 0) -> int:
        """Copy bytes out of the mapping at ``offset`` into ``destination``.

        :param handle: Open handle.
        :param destination: Writable buffer; its size is the read length.
        :param offset: Source offset in the mapping.
        :returns: Number of bytes copied (always the buffer size).
        :raises TypeError: If ``destination`` is read-only.
        :raises OutOfBoundsError: If the range does not fit the mapping.
        :raises PartialTransferError: If the native copy is short.
        """

        view: memoryview = _byte_view(destination)
        if view.readonly is True:
            raise TypeError("read destination must be a writable buffer")
        length: int = view.nbytes
        _check_range(handle, offset, length, "read")
        if length == 0:
            return 0

        lib: BoundInterface = self._loader.get()
        dst = (ctypes.c_char * length).from_buffer(view)
        copied: int = int(lib.mmap_read(dst, handle.region, offset, length))
        if copied != length:
            raise PartialTransferError(
                f"partial read: {copied} of {length}", requested=length, transferred=copied
            )
        return copied

    def flush(self, handle: MmapHandle, offset: int = 0, length: int | None = None) -> None:
        """Ask the OS to write a range of the mapping back to the file.

        :param handle: Open handle.
        :param offset: Start of the range.
        :param length: Range length (defaults to the rest of the mapping).
        :raises OutOfBoundsError: If the range does not fit the mapping.
        :raises FlushError: If the native flush reports failure.
        """

        if length is None:
            length = handle.length - offset
        _check_range(handle, offset, length, "flush")

        # msync needs a page-aligned start address.
        aligned: int = offset
        span: int = length
        if length > 0:
            aligned = offset - (offset % _mmap.PAGESIZE)
            span = length + (offset - aligned)

        lib: BoundInterface = self._loader.get()
        status: int = int(lib.mmap_flush(handle.region, aligned, span))
        if status != 0:
            raise FlushError(f"mmap_flush failed (status={status}): {handle.path}", status=status)

    def close(self, handle: MmapHandle) -> None:
        """Release the mapping. Must be called exactly once per handle.

        :param handle: Open handle.
        """

        lib: BoundInterface = self._loader.get()
        lib.mmap_close(handle.region, handle.length)

    @contextlib.contextmanager
    def mapped(
        self,
        path: str | os.PathLike[str],
        *,
        writable: bool = False,
        min_size: int | None = None,
    ) -> Iterator[MmapHandle]:
        """Open a mapping for the duration of a ``with`` block.

        :param path: File to map.
        :param writable: Map read-write instead of read-only.
        :param min_size: Ensure the file is at least this large (implies ``writable``).
        :returns: Context manager yielding the handle.
        """

        handle: MmapHandle
        if min_size is not None:
            handle = self.open_write_with_size(path, min_size)
        elif writable is True:
            handle = self.open_write(path)
        else:
            handle = self.open(path)
        try:
            yield handle
        finally:
            self.close(handle)


def _open_with(
    fn: Callable[..., int | None],
    operation: str,
    path: str | os.PathLike[str],
    *extra: int,
) -> MmapHandle:
    """Call a native open-family symbol and wrap the result.

    :param fn: Bound native symbol.
    :param operation: Symbol name (for errors).
    :param path: File path.
    :param extra: Trailing native arguments (e.g. the requested size).
    :returns: New handle.
    :raises MapOpenError: On a null region or an unencodable path.
    """

    path_str: str = os.fspath(path)
    encoded: bytes = os.fsencode(path_str)
    if b"\x00" in encoded:
        raise MapOpenError(path=path_str, operation=operation)

    out_len = ctypes.c_size_t(0)
    region: int | None = fn(encoded, ctypes.pointer(out_len), *extra)
    if not region:
        raise MapOpenError(path=path_str, operation=operation)
    return MmapHandle(region=int(region), length=int(out_len.value), path=path_str)


def _ensure_file_size(path: str | os.PathLike[str], min_size: int) -> None:
    """Create ``path`` if needed and extend it to ``min_size`` bytes.

    :param path: File path.
    :param min_size: Minimum size in bytes; larger files are left alone.
    :raises MapOpenError: If the file cannot be created or resized.
    """

    try:
        with builtins.open(path, "ab") as f:
            current: int = f.seek(0, os.SEEK_END)
            if current < min_size:
                f.truncate(min_size)
    except OSError as e:
        raise MapOpenError(path=os.fspath(path), operation="resize") from e


def _check_range(handle: MmapHandle, offset: int, length: int, operation: str) -> None:
    """Reject ranges outside the mapping before any native call.

    :param handle: Open handle.
    :param offset: Range start.
    :param length: Range length.
    :param operation: Operation name (for errors).
    :raises OutOfBoundsError: If the range is negative or too long.
    """

    if offset < 0 or length < 0 or offset + length > handle.length:
        raise OutOfBoundsError(
            f"{operation} beyond mapping length: offset={offset} length={length} mapped={handle.length}",
            offset=offset,
            length=length,
            mapped_length=handle.length,
        )


def _byte_view(buf: bytes | bytearray | memoryview) -> memoryview:
    """View a bytes-like object as flat unsigned bytes.

    :param buf: Bytes-like object.
    :returns: Byte-format memoryview.
    :raises TypeError: If the buffer is not C-contiguous.
    """

    view: memoryview = memoryview(buf)
    if view.c_contiguous is False:
        raise TypeError("buffer must be C-contiguous")
    if view.format != "B" or view.ndim != 1:
        view = view.cast("B")
    return view


def _source_array(view: memoryview) -> ctypes.Array:
    """Expose a source buffer to native code.

    Writable buffers are shared. Other read-only views are copied once
    because ctypes cannot take their address; ``bytes`` never reaches here,
    native code receives it directly.

    :param view: Byte-format view of the source.
    :returns: ctypes char array over the source bytes.
    """

    array_type = ctypes.c_char * view.nbytes
    if view.readonly is True:
        return array_type.from_buffer_copy(view)
    return array_type.from_buffer(view)


_DEFAULT_CLIENT: MmapIO | None = None
_DEFAULT_CLIENT_LOCK: threading.Lock = threading.Lock()


def default_client() -> MmapIO:
    """Return the process-wide :class:`MmapIO` using the default loader."""

    global _DEFAULT_CLIENT

    with _DEFAULT_CLIENT_LOCK:
        if _DEFAULT_CLIENT is None:
            _DEFAULT_CLIENT = MmapIO()
        return _DEFAULT_CLIENT


def open(path: str | os.PathLike[str]) -> MmapHandle:
    """Map an existing file read-only (see :meth:`MmapIO.open`)."""

    return default_client().open(path)


def open_write(path: str | os.PathLike[str]) -> MmapHandle:
    """Map a file read-write (see :meth:`MmapIO.open_write`)."""

    return default_client().open_write(path)


def open_write_with_size(path: str | os.PathLike[str], min_size: int) -> MmapHandle:
    """Map a file read-write, ensuring its size (see :meth:`MmapIO.open_write_with_size`)."""

    return default_client().open_write_with_size(path, min_size)


def write(handle: MmapHandle, source: bytes | bytearray | memoryview, offset: int = 0) -> int:
    return default_client().write(handle, source, offset)


def read(handle: MmapHandle, destination: bytearray | memoryview, offset: int = 0) -> int:
    return default_client().read(handle, destination, offset)


def flush(handle: MmapHandle, offset: int = 0, length: int | None = None) -> None:
    default_client().flush(handle, offset, length)


def close(handle: MmapHandle) -> None:
    default_client().close(handle)


def mapped(
    path: str | os.PathLike[str],
    *,
    writable: bool = False,
    min_size: int | None = None,
) -> contextlib.AbstractContextManager[MmapHandle]:
    """Context-managed mapping (see :meth:`MmapIO.mapped`)."""

    return default_client().mapped(path, writable=writable, min_size=min_size)
