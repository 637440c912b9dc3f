"""Command line interface for mmapio."""

import argparse
import logging
import pathlib
import re
import sys

from mmapio.checksums import collect_checksums, default_asset_regex, render_manifest, write_manifest
from mmapio.config import DEFAULT_BASE_NAME, LoaderConfig, resolve_loader_config
from mmapio.errors import ChecksumManifestError, MmapError
from mmapio.loader import LibraryLoader
from mmapio.native import BoundInterface
from mmapio.resolver import ResolvedLibrary
from mmapio.target import PlatformTag, asset_name_for, identify


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the mmapio logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("mmapio")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _add_logging_flags(p: argparse.ArgumentParser) -> None:
    """Attach ``-v``/``-q`` counters to a subcommand parser.

    :param p: Subcommand parser.
    """

    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    :returns: Parser with ``platform``, ``resolve`` and ``checksums`` subcommands.
    """

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="mmapio",
        description="Locate, verify and inspect the native mmap library.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_platform = subparsers.add_parser(
        "platform",
        help="Print the detected platform and the release asset name.",
    )
    p_platform.add_argument(
        "--base-name",
        type=str,
        default=DEFAULT_BASE_NAME,
        help="Library base name used in asset file names.",
    )
    _add_logging_flags(p_platform)

    p_resolve = subparsers.add_parser(
        "resolve",
        help="Acquire the native library (override, dev build, cache or download) and bind it.",
    )
    p_resolve.add_argument(
        "--base-name",
        type=str,
        default=None,
        help="Library base name used in asset file names.",
    )
    p_resolve.add_argument(
        "--cache-dir",
        type=pathlib.Path,
        default=None,
        help="Cache directory (defaults to the platform cache directory).",
    )
    p_resolve.add_argument(
        "--dev-dir",
        type=pathlib.Path,
        default=None,
        help="Development artifact directory (default: ./dist).",
    )
    p_resolve.add_argument(
        "--release-url",
        type=str,
        default=None,
        help="Release download base URL; assets are fetched from <url>/v<version>/<asset>.",
    )
    _add_logging_flags(p_resolve)

    p_checksums = subparsers.add_parser(
        "checksums",
        help="Write a checksum manifest (asset name -> SHA-256) for built assets.",
    )
    p_checksums.add_argument(
        "in_dir",
        nargs="?",
        type=pathlib.Path,
        default=pathlib.Path("dist"),
        help="Directory to scan recursively (default: dist).",
    )
    p_checksums.add_argument(
        "out_file",
        nargs="?",
        type=pathlib.Path,
        default=pathlib.Path("checksums.json"),
        help="Manifest output path (default: checksums.json).",
    )
    p_checksums.add_argument(
        "--base-name",
        type=str,
        default=DEFAULT_BASE_NAME,
        help="Library base name for the default asset name pattern.",
    )
    p_checksums.add_argument(
        "--name-regex",
        type=str,
        default=None,
        help="Override the asset file name regex.",
    )
    p_checksums.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Print the JSON to stdout instead of writing the file.",
    )
    p_checksums.add_argument(
        "-p",
        "--pretty",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Pretty-print JSON (default: on when writing a file, off for --dry-run).",
    )
    p_checksums.add_argument(
        "-s",
        "--strict",
        action="store_true",
        help="Fail on duplicate asset basenames found in different directories.",
    )
    p_checksums.add_argument(
        "--fail-on-empty",
        action="store_true",
        help="Fail if no matching assets are found.",
    )
    _add_logging_flags(p_checksums)

    return parser


def _cmd_platform(ns: argparse.Namespace) -> int:
    """Run ``mmapio platform``.

    :param ns: Parsed arguments.
    :returns: Exit code.
    """

    tag: PlatformTag = identify()
    print(f"os={tag.os_name}")
    print(f"arch={tag.arch}")
    print(f"asset={asset_name_for(ns.base_name, tag).file_name}")
    return 0


def _cmd_resolve(ns: argparse.Namespace, *, logger: logging.Logger) -> int:
    """Run ``mmapio resolve``.

    :param ns: Parsed arguments.
    :param logger: Configured logger.
    :returns: Exit code.
    """

    config: LoaderConfig = resolve_loader_config(
        base_name=ns.base_name,
        cache_dir=ns.cache_dir,
        dev_dir=ns.dev_dir,
        release_url=ns.release_url,
    )
    loader: LibraryLoader = LibraryLoader(config=config, logger=logger)
    interface: BoundInterface = loader.get()
    resolved: ResolvedLibrary | None = loader.resolved
    if resolved is None:
        raise AssertionError("Internal error: acquisition succeeded without a resolved path.")

    print(f"path={resolved.path}")
    print(f"source={resolved.source}")
    print(f"interface={interface.kind.value}")
    return 0


def _cmd_checksums(ns: argparse.Namespace, *, logger: logging.Logger) -> int:
    """Run ``mmapio checksums``.

    :param ns: Parsed arguments.
    :param logger: Configured logger.
    :returns: Exit code.
    """

    name_regex: re.Pattern[str]
    if ns.name_regex is not None:
        try:
            name_regex = re.compile(ns.name_regex)
        except re.error as e:
            raise ChecksumManifestError(f"Invalid --name-regex {ns.name_regex!r}: {e}") from e
    else:
        name_regex = default_asset_regex(ns.base_name)

    pretty: bool = (ns.dry_run is False) if ns.pretty is None else bool(ns.pretty)
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(
            f"mmapio: in_dir={ns.in_dir} out_file={ns.out_file} dry_run={ns.dry_run} "
            f"pretty={pretty} strict={ns.strict} fail_on_empty={ns.fail_on_empty}"
        )
        logger.debug(f"mmapio: name_regex={name_regex.pattern}")

    mapping: dict[str, str] = collect_checksums(
        ns.in_dir,
        name_regex=name_regex,
        strict=ns.strict,
        fail_on_empty=ns.fail_on_empty,
        logger=logger,
    )
    text: str = render_manifest(mapping, pretty=pretty)

    if ns.dry_run is True:
        sys.stdout.write(text)
        if text.endswith("\n") is False:
            sys.stdout.write("\n")
        return 0

    write_manifest(ns.out_file, text)
    noun: str = "entry" if len(mapping) == 1 else "entries"
    logger.info(f"mmapio: wrote {ns.out_file} with {len(mapping)} {noun}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the mmapio CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = _build_parser()
    ns = parser.parse_args(argv)
    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)

    try:
        if ns.command == "platform":
            return _cmd_platform(ns)
        if ns.command == "resolve":
            return _cmd_resolve(ns, logger=logger)
        if ns.command == "checksums":
            return _cmd_checksums(ns, logger=logger)
    except MmapError as e:
        logger.error(f"mmapio: ERROR: {e}")
        return 1

    raise AssertionError(f"Unhandled command: {ns.command}")


if __name__ == "__main__":
    sys.exit(main())
