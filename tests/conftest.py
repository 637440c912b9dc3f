"""Shared fixtures: a pure-Python stand-in for the native mapping engine."""

import ctypes
import mmap
import os
import pathlib

import pytest

from mmapio.api import MmapIO
from mmapio.config import resolve_loader_config
from mmapio.loader import LibraryLoader
from mmapio.target import PlatformTag


DEFAULT_WRITE_SIZE: int = 1024 * 1024
_O_BINARY: int = getattr(os, "O_BINARY", 0)


class FakeSymbol:
    """Callable standing in for a ctypes function pointer.

    Accepts ``argtypes``/``restype`` assignment like a real ctypes symbol and
    counts calls.
    """

    def __init__(self, fn):
        self._fn = fn
        self.calls: int = 0
        self.last_args: tuple[object, ...] | None = None
        self.argtypes = None
        self.restype = None

    def __call__(self, *args):
        self.calls += 1
        self.last_args = args
        return self._fn(*args)


class FakeNativeLibrary:
    """Native engine semantics implemented with the stdlib ``mmap`` module.

    Region references are small integers; a null (``None``) return signals an
    open failure, mirroring the C ABI.
    """

    def __init__(self, *, with_size: bool = True) -> None:
        self._regions: dict[int, mmap.mmap] = {}
        self._next_region: int = 0x1000
        self.short_copy: bool = False

        self.mmap_open = FakeSymbol(self._open)
        self.mmap_open_write = FakeSymbol(self._open_write)
        self.mmap_write = FakeSymbol(self._write)
        self.mmap_read = FakeSymbol(self._read)
        self.mmap_flush = FakeSymbol(self._flush)
        self.mmap_close = FakeSymbol(self._close)
        if with_size is True:
            self.mmap_open_write_with_size = FakeSymbol(self._open_write_with_size)

    @property
    def symbols(self) -> list[FakeSymbol]:
        return [v for v in vars(self).values() if isinstance(v, FakeSymbol)]

    def native_calls(self) -> int:
        return sum(s.calls for s in self.symbols)

    @property
    def open_regions(self) -> int:
        return len(self._regions)

    def _register(self, mm: mmap.mmap) -> int:
        region: int = self._next_region
        self._next_region += 0x1000
        self._regions[region] = mm
        return region

    def _open(self, path: bytes, len_out) -> int | None:
        try:
            fd: int = os.open(os.fsdecode(path), os.O_RDONLY | _O_BINARY)
        except OSError:
            return None
        try:
            size: int = os.fstat(fd).st_size
            if size == 0:
                return None
            mm = mmap.mmap(fd, size, access=mmap.ACCESS_READ)
        finally:
            os.close(fd)
        len_out[0] = size
        return self._register(mm)

    def _map_rw(self, path: bytes, len_out, requested: int) -> int | None:
        try:
            fd: int = os.open(os.fsdecode(path), os.O_RDWR | os.O_CREAT | _O_BINARY, 0o644)
        except OSError:
            return None
        try:
            current: int = os.fstat(fd).st_size
            target: int = requested if requested > 0 else current
            if target == 0:
                target = DEFAULT_WRITE_SIZE
            if current < target:
                os.ftruncate(fd, target)
            mm = mmap.mmap(fd, target, access=mmap.ACCESS_WRITE)
        finally:
            os.close(fd)
        len_out[0] = target
        return self._register(mm)

    def _open_write(self, path: bytes, len_out) -> int | None:
        return self._map_rw(path, len_out, 0)

    def _open_write_with_size(self, path: bytes, len_out, size: int) -> int | None:
        return self._map_rw(path, len_out, size)

    def _write(self, region: int, offset: int, src, length: int) -> int:
        if length == 0:
            return 0
        if self.short_copy is True:
            length -= 1
        mm: mmap.mmap = self._regions[region]
        mm[offset : offset + length] = ctypes.string_at(src, length)
        return length

    def _read(self, dst, region: int, offset: int, length: int) -> int:
        if length == 0:
            return 0
        if self.short_copy is True:
            length -= 1
        mm: mmap.mmap = self._regions[region]
        ctypes.memmove(dst, mm[offset : offset + length], length)
        return length

    def _flush(self, region: int, offset: int, length: int) -> int:
        if length == 0:
            return -1
        try:
            self._regions[region].flush(offset, length)
        except (ValueError, OSError):
            return -1
        return 0

    def _close(self, region: int, length: int) -> None:
        self._regions.pop(region).close()


LINUX_X86_64: PlatformTag = PlatformTag(os_name="linux", arch="x86_64")


def make_loader(lib: FakeNativeLibrary, tmp_path: pathlib.Path) -> LibraryLoader:
    """Build a loader that resolves through the env override to ``lib``."""

    config = resolve_loader_config(
        environ={"MMAPIO_LIB_PATH": str(tmp_path / "libmmap_fake.so")},
        dev_dir=tmp_path / "dist",
        cache_dir=tmp_path / "cache",
    )
    return LibraryLoader(
        config=config,
        manifest={},
        dlopen=lambda path: lib,
        identify_platform=lambda: LINUX_X86_64,
    )


@pytest.fixture()
def fake_lib() -> FakeNativeLibrary:
    return FakeNativeLibrary()


@pytest.fixture()
def legacy_lib() -> FakeNativeLibrary:
    return FakeNativeLibrary(with_size=False)


@pytest.fixture()
def client(fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path) -> MmapIO:
    return MmapIO(make_loader(fake_lib, tmp_path))


@pytest.fixture()
def legacy_client(legacy_lib: FakeNativeLibrary, tmp_path: pathlib.Path) -> MmapIO:
    return MmapIO(make_loader(legacy_lib, tmp_path))
