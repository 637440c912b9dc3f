"""Native library resolution.

First match wins:

1. ``MMAPIO_LIB_PATH`` override (used verbatim, not verified).
2. A development artifact under ``dist/`` (flat, then legacy per-platform
   subdirectory; used verbatim, not verified).
3. The versioned cache entry, re-verified against the checksum manifest.
   A mismatch is treated exactly like a missing file.
4. The release asset download, verified and then persisted to the cache
   with an executable mode. Any failure here is terminal.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
import logging
import os
import pathlib
import time

import requests

from mmapio.checksums import expected_digest, require_digest, verify
from mmapio.config import LoaderConfig
from mmapio.errors import CacheError, DownloadError
from mmapio.target import AssetDescriptor, PlatformTag


SOURCE_ENV: str = "env"
SOURCE_DEV: str = "dev"
SOURCE_CACHE: str = "cache"
SOURCE_DOWNLOAD: str = "download"

Downloader = Callable[..., bytes]


@dataclass(frozen=True, slots=True)
class ResolvedLibrary:
    """Library path chosen for this process.

    :ivar path: Filesystem path handed to the dynamic loader.
    :ivar source: One of ``env``, ``dev``, ``cache`` or ``download``.
    """

    path: pathlib.Path
    source: str


def default_cache_dir(tag: PlatformTag, *, version: str, environ: Mapping[str, str]) -> pathlib.Path:
    """Return the OS-conventional, version-scoped cache directory.

    The runtime OS label is used as-is here (``darwin``), unlike asset names.

    :param tag: Running platform.
    :param version: Package version.
    :param environ: Environment mapping.
    :returns: Cache directory path (not created).
    """

    home: str = environ.get("HOME") or environ.get("USERPROFILE") or os.getcwd()
    if tag.os_name == "windows":
        base: str = environ.get("LOCALAPPDATA") or home
        return pathlib.Path(base) / "mmapio" / "cache" / version
    if tag.os_name == "darwin":
        return pathlib.Path(home) / "Library" / "Caches" / "mmapio" / version
    xdg: str = environ.get("XDG_CACHE_HOME") or str(pathlib.Path(home) / ".cache")
    return pathlib.Path(xdg) / "mmapio" / version


def dev_candidates(asset: AssetDescriptor, *, tag: PlatformTag, dev_dir: pathlib.Path) -> list[pathlib.Path]:
    """List development artifact locations in lookup order.

    :param asset: Asset to look for.
    :param tag: Running platform.
    :param dev_dir: Development artifact root.
    :returns: Flat layout path, then the legacy per-platform path.
    """

    return [
        dev_dir / asset.file_name,
        dev_dir / f"{tag.os_tag}-{tag.arch}" / asset.file_name,
    ]


def download_asset(url: str, *, timeout: float | None = None) -> bytes:
    """Fetch a release asset into memory.

    :param url: Asset URL.
    :param timeout: Optional timeout in seconds.
    :returns: Full response body.
    :raises DownloadError: On transport errors or a non-success status.
    """

    try:
        response: requests.Response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise DownloadError(f"Failed to fetch {url}: {e}", url=url) from e

    if response.ok is False:
        raise DownloadError(
            f"Failed to fetch {url}: {response.status_code} {response.reason}",
            url=url,
            status=response.status_code,
        )
    return response.content


def resolve_library_path(
    asset: AssetDescriptor,
    *,
    tag: PlatformTag,
    config: LoaderConfig,
    manifest: Mapping[str, str],
    logger: logging.Logger,
    download: Downloader = download_asset,
) -> ResolvedLibrary:
    """Decide which native library file this process loads.

    :param asset: Asset for the running platform.
    :param tag: Running platform.
    :param config: Loader configuration.
    :param manifest: Checksum manifest.
    :param logger: Logger for progress output.
    :param download: Callable fetching ``url`` (with ``timeout=``) into bytes.
    :returns: Chosen library path and where it came from.
    :raises MissingChecksumEntryError: If verification is needed and the asset is unlisted.
    :raises ChecksumMismatchError: If the downloaded bytes fail verification.
    :raises DownloadError: If the download fails.
    :raises CacheError: If the verified download cannot be written to the cache.
    """

    if config.lib_path_override is not None:
        logger.info(f"mmapio: using library from $MMAPIO_LIB_PATH ({config.lib_path_override})")
        return ResolvedLibrary(path=pathlib.Path(config.lib_path_override), source=SOURCE_ENV)

    for candidate in dev_candidates(asset, tag=tag, dev_dir=config.dev_dir):
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"mmapio: checking dev artifact {candidate}")
        if candidate.is_file() is True:
            logger.info(f"mmapio: using dev artifact ({candidate})")
            return ResolvedLibrary(path=candidate, source=SOURCE_DEV)

    want: str = expected_digest(manifest, asset.file_name)

    cache_root: pathlib.Path
    if config.cache_dir is not None:
        cache_root = config.cache_dir
    else:
        cache_root = default_cache_dir(tag, version=config.version, environ=config.environ)
    cached_path: pathlib.Path = cache_root / asset.file_name

    cached: bytes | None = _read_cached(cached_path, logger=logger)
    if cached is not None:
        if verify(cached, want) is True:
            logger.info(f"mmapio: cache hit ({cached_path})")
            return ResolvedLibrary(path=cached_path, source=SOURCE_CACHE)
        logger.warning(f"mmapio: checksum mismatch for cached {cached_path}; downloading again")

    url: str = config.release_asset_url(asset.file_name)
    logger.info(f"mmapio: downloading {asset.file_name}")
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"mmapio: url={url}")

    t0: float = time.perf_counter()
    payload: bytes = download(url, timeout=config.download_timeout)
    t1: float = time.perf_counter()
    logger.info(f"mmapio: download complete ({len(payload)} bytes) in {t1 - t0:.2f}s")

    require_digest(payload, asset=asset.file_name, expected=want, source=url)
    _write_cache_entry(cached_path, payload)
    logger.info(f"mmapio: cached {cached_path}")
    return ResolvedLibrary(path=cached_path, source=SOURCE_DOWNLOAD)


def _read_cached(path: pathlib.Path, *, logger: logging.Logger) -> bytes | None:
    """Read a cache entry if one exists.

    :param path: Cache entry path.
    :param logger: Logger for debug output.
    :returns: Entry bytes, or ``None`` when absent or unreadable.
    """

    if path.is_file() is False:
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"mmapio: cache miss ({path})")
        return None
    try:
        return path.read_bytes()
    except OSError as e:
        logger.warning(f"mmapio: cannot read cached {path}: {e}")
        return None


def _write_cache_entry(path: pathlib.Path, payload: bytes) -> None:
    """Persist verified bytes to the cache with an executable mode.

    The bytes land in a sibling temp file first and are renamed into place,
    so a reader never sees a half-written library.

    :param path: Final cache entry path.
    :param payload: Verified library bytes.
    :raises CacheError: If the cache directory or entry cannot be written.
    """

    tmp_path: pathlib.Path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    flags: int = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_BINARY", 0)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd: int = os.open(tmp_path, flags, 0o755)
    except OSError as e:
        raise CacheError(f"Cannot write cache entry {path}: {e}", path=str(path)) from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.chmod(tmp_path, 0o755)
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise CacheError(f"Cannot write cache entry {path}: {e}", path=str(path)) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
