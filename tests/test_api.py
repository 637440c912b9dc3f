"""Tests for the mapping operations against the in-process fake engine."""

import mmap
import pathlib

import pytest

import mmapio.api
from conftest import FakeNativeLibrary
from mmapio.api import MmapHandle, MmapIO
from mmapio.errors import FlushError, MapOpenError, OutOfBoundsError, PartialTransferError
from mmapio.native import InterfaceKind


def _pattern(n: int) -> bytes:
    return bytes((i * 31 + 7) & 0xFF for i in range(n))


@pytest.mark.parametrize("n", [0, 1, 4095, 4096, 65537, 70000])
def test_write_flush_reopen_round_trip(client: MmapIO, tmp_path: pathlib.Path, n: int) -> None:
    path = tmp_path / "data.bin"
    handle = client.open_write_with_size(path, 70000)
    assert handle.length == 70000

    data = _pattern(n)
    assert client.write(handle, data, 0) == n
    client.flush(handle)
    client.close(handle)

    reopened = client.open(path)
    out = bytearray(n)
    assert client.read(reopened, out, 0) == n
    client.close(reopened)

    assert bytes(out) == data


def test_bytes_source_is_passed_without_copy(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)
    data = _pattern(1000)

    client.write(handle, data, 16)

    assert fake_lib.mmap_write.last_args[2] is data
    out = bytearray(1000)
    client.read(handle, out, 16)
    assert bytes(out) == data
    client.close(handle)


def test_write_accepts_writable_buffers(client: MmapIO, tmp_path: pathlib.Path) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)

    client.write(handle, bytearray(b"abcd"), 10)
    client.write(handle, memoryview(b"wxyz"), 14)
    out = memoryview(bytearray(8))
    client.read(handle, out, 10)

    assert out.tobytes() == b"abcdwxyz"
    client.close(handle)


@pytest.mark.parametrize(
    "offset, length",
    [
        (4090, 7),
        (4096, 1),
        (-1, 1),
    ],
)
def test_out_of_bounds_rejected_before_native_call(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path, offset: int, length: int
) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)
    calls_before = fake_lib.native_calls()

    with pytest.raises(OutOfBoundsError) as excinfo:
        client.write(handle, b"\x01" * length, offset)
    with pytest.raises(OutOfBoundsError):
        client.read(handle, bytearray(length), offset)

    assert fake_lib.native_calls() == calls_before
    assert excinfo.value.mapped_length == 4096
    assert isinstance(excinfo.value, IndexError)
    client.close(handle)


def test_zero_length_copy_skips_native_call(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)

    assert client.write(handle, b"", 4096) == 0
    assert client.read(handle, bytearray(0), 4096) == 0
    assert fake_lib.mmap_write.calls == 0
    assert fake_lib.mmap_read.calls == 0
    client.close(handle)


def test_short_copy_raises_partial_transfer(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)
    fake_lib.short_copy = True

    with pytest.raises(PartialTransferError) as excinfo:
        client.write(handle, b"abcdef", 0)
    assert (excinfo.value.requested, excinfo.value.transferred) == (6, 5)

    with pytest.raises(PartialTransferError):
        client.read(handle, bytearray(6), 0)
    client.close(handle)


def test_read_into_bytes_is_type_error(client: MmapIO, tmp_path: pathlib.Path) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)

    with pytest.raises(TypeError):
        client.read(handle, b"\x00" * 4, 0)
    client.close(handle)


def test_open_missing_file(client: MmapIO, tmp_path: pathlib.Path) -> None:
    missing = tmp_path / "missing.bin"

    with pytest.raises(MapOpenError) as excinfo:
        client.open(missing)

    assert excinfo.value.path == str(missing)
    assert excinfo.value.operation == "mmap_open"


def test_open_reports_file_length(client: MmapIO, tmp_path: pathlib.Path) -> None:
    path = tmp_path / "data.bin"
    path.write_bytes(_pattern(12345))

    handle = client.open(path)
    out = bytearray(100)
    client.read(handle, out, 12245)

    assert handle.length == 12345
    assert bytes(out) == _pattern(12345)[12245:]
    client.close(handle)


def test_open_write_uses_current_size(client: MmapIO, tmp_path: pathlib.Path) -> None:
    path = tmp_path / "data.bin"
    path.write_bytes(b"\x00" * 5000)

    handle = client.open_write(path)

    assert handle.length == 5000
    client.close(handle)


def test_flush_zero_length_is_error(client: MmapIO, tmp_path: pathlib.Path) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)

    with pytest.raises(FlushError) as excinfo:
        client.flush(handle, 0, 0)

    assert excinfo.value.status != 0
    client.close(handle)


def test_flush_aligns_offset_to_page(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    page = mmap.PAGESIZE
    handle = client.open_write_with_size(tmp_path / "data.bin", 4 * page)

    client.write(handle, b"hello", page + 10)
    client.flush(handle, page + 10, 5)

    assert fake_lib.mmap_flush.last_args == (handle.region, page, 15)
    client.close(handle)


def test_flush_whole_mapping_by_default(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 8192)

    client.flush(handle)

    assert fake_lib.mmap_flush.last_args == (handle.region, 0, 8192)
    client.close(handle)


def test_flush_out_of_bounds(client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 4096)

    with pytest.raises(OutOfBoundsError):
        client.flush(handle, 4000, 200)

    assert fake_lib.mmap_flush.calls == 0
    client.close(handle)


def test_full_interface_uses_native_sized_open(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    handle = client.open_write_with_size(tmp_path / "data.bin", 8192)

    assert client.interface_kind is InterfaceKind.FULL
    assert fake_lib.mmap_open_write_with_size.calls == 1
    assert fake_lib.mmap_open_write.calls == 0
    assert handle.length == 8192
    client.close(handle)


def test_legacy_sized_open_creates_file(legacy_client: MmapIO, tmp_path: pathlib.Path) -> None:
    path = tmp_path / "new.bin"

    handle = legacy_client.open_write_with_size(path, 8192)

    assert legacy_client.interface_kind is InterfaceKind.LEGACY
    assert path.stat().st_size == 8192
    assert handle.length == 8192
    legacy_client.close(handle)


def test_legacy_sized_open_extends_but_never_shrinks(
    legacy_client: MmapIO, tmp_path: pathlib.Path
) -> None:
    small = tmp_path / "small.bin"
    small.write_bytes(b"keep")
    large = tmp_path / "large.bin"
    large.write_bytes(b"\x00" * 20000)

    h_small = legacy_client.open_write_with_size(small, 4096)
    h_large = legacy_client.open_write_with_size(large, 100)

    assert h_small.length == 4096
    assert h_large.length == 20000
    assert large.stat().st_size == 20000
    out = bytearray(4)
    legacy_client.read(h_small, out, 0)
    assert bytes(out) == b"keep"
    legacy_client.close(h_small)
    legacy_client.close(h_large)


def test_sized_open_rejects_negative_size(client: MmapIO, tmp_path: pathlib.Path) -> None:
    with pytest.raises(ValueError):
        client.open_write_with_size(tmp_path / "data.bin", -1)


def test_mapped_closes_on_exit(client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path) -> None:
    path = tmp_path / "data.bin"

    with client.mapped(path, min_size=4096) as handle:
        client.write(handle, b"ctx", 0)
        assert fake_lib.open_regions == 1

    assert fake_lib.open_regions == 0
    assert fake_lib.mmap_close.last_args == (handle.region, handle.length)

    with pytest.raises(OutOfBoundsError):
        with client.mapped(path) as handle:
            client.read(handle, bytearray(8), 4092)
    assert fake_lib.open_regions == 0


def test_end_to_end_pattern_persists(client: MmapIO, tmp_path: pathlib.Path) -> None:
    path = tmp_path / "big.bin"
    size = 1024 * 1024
    offset = 512 * 1024
    pattern = _pattern(64 * 1024)

    handle = client.open_write_with_size(path, size)
    assert handle.length == size
    client.write(handle, pattern, offset)
    client.flush(handle, offset, len(pattern))
    client.close(handle)

    reopened = client.open(path)
    out = bytearray(len(pattern))
    client.read(reopened, out, offset)
    client.close(reopened)

    assert bytes(out) == pattern
    assert path.read_bytes()[offset : offset + len(pattern)] == pattern


def test_module_level_functions_use_default_client(
    client: MmapIO, monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    monkeypatch.setattr(mmapio.api, "_DEFAULT_CLIENT", client)
    path = tmp_path / "data.bin"

    handle: MmapHandle = mmapio.open_write_with_size(path, 4096)
    mmapio.write(handle, b"module", 0)
    mmapio.flush(handle)
    mmapio.close(handle)

    with mmapio.mapped(path) as ro:
        out = bytearray(6)
        mmapio.read(ro, out)
    assert bytes(out) == b"module"


def test_path_with_nul_byte_never_reaches_native(
    client: MmapIO, fake_lib: FakeNativeLibrary, tmp_path: pathlib.Path
) -> None:
    with pytest.raises(MapOpenError):
        client.open(str(tmp_path / "bad\x00name.bin"))

    assert fake_lib.mmap_open.calls == 0
