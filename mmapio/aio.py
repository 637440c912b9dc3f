"""asyncio facade over :mod:`mmapio.api`.

Each operation runs in a worker thread via :func:`asyncio.to_thread`, so the
event loop never blocks on acquisition, file I/O or a bulk copy. Concurrent
coroutines that trigger acquisition share the loader's single attempt.
In-flight native calls cannot be cancelled; cancelling the awaiting task
leaves the call running to completion in its thread.
"""

import asyncio
import os

from mmapio.api import MmapHandle, MmapIO, default_client
from mmapio.native import InterfaceKind


class AsyncMmapIO:
    """Awaitable wrapper around an :class:`~mmapio.api.MmapIO`."""

    def __init__(self, sync: MmapIO | None = None) -> None:
        self._sync: MmapIO = sync if sync is not None else default_client()

    @property
    def sync(self) -> MmapIO:
        return self._sync

    async def interface_kind(self) -> InterfaceKind:
        return await asyncio.to_thread(lambda: self._sync.interface_kind)

    async def open(self, path: str | os.PathLike[str]) -> MmapHandle:
        return await asyncio.to_thread(self._sync.open, path)

    async def open_write(self, path: str | os.PathLike[str]) -> MmapHandle:
        return await asyncio.to_thread(self._sync.open_write, path)

    async def open_write_with_size(self, path: str | os.PathLike[str], min_size: int) -> MmapHandle:
        return await asyncio.to_thread(self._sync.open_write_with_size, path, min_size)

    async def write(self, handle: MmapHandle, source: bytes | bytearray | memoryview, offset: int = 0) -> int:
        return await asyncio.to_thread(self._sync.write, handle, source, offset)

    async def read(self, handle: MmapHandle, destination: bytearray | memoryview, offset: int = 0) -> int:
        return await asyncio.to_thread(self._sync.read, handle, destination, offset)

    async def flush(self, handle: MmapHandle, offset: int = 0, length: int | None = None) -> None:
        await asyncio.to_thread(self._sync.flush, handle, offset, length)

    async def close(self, handle: MmapHandle) -> None:
        await asyncio.to_thread(self._sync.close, handle)


async def open(path: str | os.PathLike[str]) -> MmapHandle:
    return await AsyncMmapIO().open(path)


async def open_write(path: str | os.PathLike[str]) -> MmapHandle:
    return await AsyncMmapIO().open_write(path)


async def open_write_with_size(path: str | os.PathLike[str], min_size: int) -> MmapHandle:
    return await AsyncMmapIO().open_write_with_size(path, min_size)


async def write(handle: MmapHandle, source: bytes | bytearray | memoryview, offset: int = 0) -> int:
    return await AsyncMmapIO().write(handle, source, offset)


async def read(handle: MmapHandle, destination: bytearray | memoryview, offset: int = 0) -> int:
    return await AsyncMmapIO().read(handle, destination, offset)


async def flush(handle: MmapHandle, offset: int = 0, length: int | None = None) -> None:
    await AsyncMmapIO().flush(handle, offset, length)


async def close(handle: MmapHandle) -> None:
    await AsyncMmapIO().close(handle)
