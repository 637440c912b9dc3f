"""Loader configuration.

Every knob has a process default; callers (and the CLI) override only what
they need through :func:`resolve_loader_config`.
"""

from collections.abc import Mapping
from dataclasses import dataclass
import os
import pathlib

from mmapio import __version__


LIB_PATH_ENV: str = "MMAPIO_LIB_PATH"
DEFAULT_BASE_NAME: str = "mmap_ffi"
DEFAULT_RELEASE_URL: str = "https://github.com/mmapio/mmapio/releases/download"
DEFAULT_DEV_DIR: str = "dist"


@dataclass(frozen=True, slots=True)
class LoaderConfig:
    """Where and how to acquire the native library.

    :ivar base_name: Library base name used in asset file names.
    :ivar version: Package version; scopes the cache and picks the release tag.
    :ivar release_url: Base URL; assets live at ``<release_url>/v<version>/<asset>``.
    :ivar dev_dir: Development artifact directory.
    :ivar cache_dir: Cache directory override (``None`` uses the OS convention).
    :ivar lib_path_override: Pre-trusted library path, bypasses verification.
    :ivar download_timeout: Timeout in seconds for the asset download (``None`` waits).
    :ivar environ: Environment snapshot used for home/cache directory lookups.
    """

    base_name: str
    version: str
    release_url: str
    dev_dir: pathlib.Path
    cache_dir: pathlib.Path | None
    lib_path_override: str | None
    download_timeout: float | None
    environ: Mapping[str, str]

    def release_asset_url(self, asset: str) -> str:
        """Build the download URL for an asset.

        :param asset: Asset file name.
        :returns: Absolute URL.
        """

        return f"{self.release_url.rstrip('/')}/v{self.version}/{asset}"


def resolve_loader_config(
    *,
    environ: Mapping[str, str] | None = None,
    base_name: str | None = None,
    version: str | None = None,
    release_url: str | None = None,
    dev_dir: pathlib.Path | None = None,
    cache_dir: pathlib.Path | None = None,
    download_timeout: float | None = None,
) -> LoaderConfig:
    """Resolve a :class:`~LoaderConfig` from overrides and the environment.

    :param environ: Environment mapping (defaults to ``os.environ``).
    :param base_name: Optional library base name override.
    :param version: Optional version override.
    :param release_url: Optional release base URL override.
    :param dev_dir: Optional development artifact directory override.
    :param cache_dir: Optional cache directory override.
    :param download_timeout: Optional download timeout in seconds.
    :returns: Resolved config.
    """

    env: dict[str, str] = dict(os.environ if environ is None else environ)

    override: str | None = env.get(LIB_PATH_ENV)
    if override is not None and len(override) == 0:
        override = None

    return LoaderConfig(
        base_name=base_name if base_name is not None else DEFAULT_BASE_NAME,
        version=version if version is not None else __version__,
        release_url=release_url if release_url is not None else DEFAULT_RELEASE_URL,
        dev_dir=dev_dir if dev_dir is not None else pathlib.Path(DEFAULT_DEV_DIR),
        cache_dir=cache_dir,
        lib_path_override=override,
        download_timeout=download_timeout,
        environ=env,
    )
