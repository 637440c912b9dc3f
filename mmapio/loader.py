"""One-time native library acquisition.

Acquisition identifies the platform, names the asset, resolves a verified
library path and binds its symbols. It runs at most once per
:class:`LibraryLoader`; the outcome, success or failure, is replayed to
every caller.
"""

from collections.abc import Callable, Mapping
import concurrent.futures
import ctypes
import logging
import threading
import time

from mmapio.checksums import packaged_manifest
from mmapio.config import LoaderConfig, resolve_loader_config
from mmapio.native import BoundInterface, bind
from mmapio.resolver import Downloader, ResolvedLibrary, download_asset, resolve_library_path
from mmapio.target import AssetDescriptor, PlatformTag, asset_name_for, identify


class LibraryLoader:
    """Memoized resolve + verify + bind sequence.

    Concurrent first callers block on a single shared future; exactly one of
    them performs the download/verify/bind work.
    """

    def __init__(
        self,
        *,
        config: LoaderConfig | None = None,
        manifest: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
        download: Downloader = download_asset,
        dlopen: Callable[[str], object] = ctypes.CDLL,
        identify_platform: Callable[[], PlatformTag] = identify,
    ) -> None:
        """Create a loader.

        :param config: Loader configuration (resolved from the environment when omitted).
        :param manifest: Checksum manifest (the packaged one when omitted).
        :param logger: Logger for progress output.
        :param download: Asset downloader.
        :param dlopen: Dynamic library loader.
        :param identify_platform: Platform identifier.
        """

        self._config: LoaderConfig | None = config
        self._manifest: Mapping[str, str] | None = manifest
        self._logger: logging.Logger = logger if logger is not None else logging.getLogger("mmapio")
        self._download: Downloader = download
        self._dlopen: Callable[[str], object] = dlopen
        self._identify: Callable[[], PlatformTag] = identify_platform

        self._lock: threading.Lock = threading.Lock()
        self._future: concurrent.futures.Future[BoundInterface] | None = None
        self._resolved: ResolvedLibrary | None = None

    @property
    def resolved(self) -> ResolvedLibrary | None:
        """Library path chosen by acquisition, once it has succeeded."""

        return self._resolved

    def get(self) -> BoundInterface:
        """Return the bound interface, acquiring it on first use.

        :returns: Bound interface shared by every caller.
        :raises AcquisitionError: The memoized acquisition failure, on every call.
        :raises UnsupportedPlatformError: If the platform is not supported.
        """

        with self._lock:
            future: concurrent.futures.Future[BoundInterface] | None = self._future
            owner: bool = future is None
            if future is None:
                future = concurrent.futures.Future()
                self._future = future

        if owner is True:
            try:
                interface: BoundInterface = self._acquire()
            except BaseException as e:
                future.set_exception(e)
                raise
            future.set_result(interface)
            return interface

        return future.result()

    def _acquire(self) -> BoundInterface:
        """Run platform detection, resolution, verification and binding.

        :returns: Bound interface.
        """

        t0: float = time.perf_counter()
        config: LoaderConfig = self._config if self._config is not None else resolve_loader_config()
        manifest: Mapping[str, str] = self._manifest if self._manifest is not None else packaged_manifest()

        tag: PlatformTag = self._identify()
        asset: AssetDescriptor = asset_name_for(config.base_name, tag)
        if self._logger.isEnabledFor(logging.DEBUG) is True:
            self._logger.debug(f"mmapio: platform={tag.os_name}/{tag.arch} asset={asset.file_name}")

        resolved: ResolvedLibrary = resolve_library_path(
            asset,
            tag=tag,
            config=config,
            manifest=manifest,
            logger=self._logger,
            download=self._download,
        )
        interface: BoundInterface = bind(resolved.path, dlopen=self._dlopen, logger=self._logger)
        self._resolved = resolved

        t1: float = time.perf_counter()
        self._logger.info(f"mmapio: native library ready ({resolved.source}) in {t1 - t0:.2f}s")
        return interface


_DEFAULT_LOADER: LibraryLoader | None = None
_DEFAULT_LOADER_LOCK: threading.Lock = threading.Lock()


def default_loader() -> LibraryLoader:
    """Return the process-wide loader.

    :returns: Shared :class:`LibraryLoader` configured from the environment.
    """

    global _DEFAULT_LOADER

    with _DEFAULT_LOADER_LOCK:
        if _DEFAULT_LOADER is None:
            _DEFAULT_LOADER = LibraryLoader()
        return _DEFAULT_LOADER
