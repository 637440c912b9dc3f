"""Platform identification and asset naming.

This module is intentionally small and pure:

- :func:`identify` maps the running OS/CPU pair onto the labels native
  release assets are published for.
- :func:`asset_name_for` turns a base name plus a :class:`PlatformTag` into
  the release asset file name (``<base>-<osTag>-<arch>.<ext>``).
"""

from dataclasses import dataclass
import platform

from mmapio.errors import UnsupportedPlatformError


SUPPORTED_OS: frozenset[str] = frozenset({"windows", "linux", "darwin"})
SUPPORTED_ARCH: frozenset[str] = frozenset({"x86_64", "aarch64"})

# Asset names use "macos" even though the runtime reports "darwin".
_ASSET_OS_TAG: dict[str, str] = {
    "windows": "windows",
    "linux": "linux",
    "darwin": "macos",
}

_LIBRARY_EXTENSION: dict[str, str] = {
    "windows": "dll",
    "linux": "so",
    "darwin": "dylib",
}


@dataclass(frozen=True, slots=True)
class PlatformTag:
    """Normalized platform of the running process.

    :ivar os_name: Runtime OS label (``windows``, ``linux`` or ``darwin``).
    :ivar arch: CPU architecture (``x86_64`` or ``aarch64``).
    """

    os_name: str
    arch: str

    @property
    def os_tag(self) -> str:
        """OS label used in release asset names."""

        return _ASSET_OS_TAG[self.os_name]

    @property
    def extension(self) -> str:
        """Shared library file extension for this OS."""

        return _LIBRARY_EXTENSION[self.os_name]


@dataclass(frozen=True, slots=True)
class AssetDescriptor:
    """Release asset chosen for a platform.

    :ivar file_name: Asset file name, also the checksum manifest key.
    """

    file_name: str


def identify(*, system: str | None = None, machine: str | None = None) -> PlatformTag:
    """Identify the running platform.

    :param system: Optional ``platform.system()`` value override.
    :param machine: Optional ``platform.machine()`` value override.
    :returns: Normalized platform tag.
    :raises UnsupportedPlatformError: If the OS or architecture is not supported.
    """

    raw_system: str = platform.system() if system is None else system
    raw_machine: str = platform.machine() if machine is None else machine

    os_name: str = _normalize_os(raw_system)
    arch: str = _normalize_arch(raw_machine)

    if os_name not in SUPPORTED_OS:
        raise UnsupportedPlatformError(f"Unsupported OS: {raw_system}", os_name=os_name, arch=arch)
    if arch not in SUPPORTED_ARCH:
        raise UnsupportedPlatformError(f"Unsupported arch: {raw_machine}", os_name=os_name, arch=arch)

    return PlatformTag(os_name=os_name, arch=arch)


def asset_name_for(base_name: str, tag: PlatformTag) -> AssetDescriptor:
    """Derive the release asset name for a platform.

    :param base_name: Library base name (e.g. ``mmap_ffi``).
    :param tag: Target platform.
    :returns: Asset descriptor like ``mmap_ffi-macos-aarch64.dylib``.
    """

    return AssetDescriptor(file_name=f"{base_name}-{tag.os_tag}-{tag.arch}.{tag.extension}")


def _normalize_os(system: str) -> str:
    """Normalize a ``platform.system()`` string.

    :param system: Raw OS name (e.g. ``Darwin``).
    :returns: Lowercase OS label.
    """

    s: str = system.strip().lower()
    if s == "win32":
        return "windows"
    return s


def _normalize_arch(machine: str) -> str:
    """Normalize a machine string into the architecture labels we publish for.

    :param machine: Raw machine string (e.g. from ``platform.machine()``).
    :returns: Normalized architecture string.
    """

    m: str = machine.strip().lower()
    if m == "amd64" or m == "x86_64" or m == "x64":
        return "x86_64"
    if m == "arm64" or m == "aarch64":
        return "aarch64"
    return m
