"""SHA-256 checksum manifest handling.

The manifest is a JSON object mapping release asset file names to lowercase
hex SHA-256 digests. A copy ships inside the package and is read once per
process; :func:`collect_checksums` and :func:`render_manifest` produce it at
release time.
"""

from collections.abc import Mapping
import hashlib
import importlib.resources
import json
import logging
import os
import pathlib
import re

from mmapio.errors import ChecksumManifestError, ChecksumMismatchError, MissingChecksumEntryError


MANIFEST_RESOURCE: str = "checksums.json"

_HEX_DIGEST_RE: re.Pattern[str] = re.compile(r"^[0-9a-fA-F]{64}$")

_PACKAGED_MANIFEST: dict[str, str] | None = None


def sha256_hex(data: bytes) -> str:
    """Hash bytes with SHA-256.

    :param data: Complete content to hash.
    :returns: Lowercase hex digest.
    """

    return hashlib.sha256(data).hexdigest()


def sha256_file(path: pathlib.Path) -> str:
    """Hash a file with SHA-256.

    :param path: File to hash.
    :returns: Lowercase hex digest.
    """

    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk: bytes = f.read(1024 * 1024)
            if len(chunk) == 0:
                break
            h.update(chunk)
    return h.hexdigest()


def verify(data: bytes, expected_hex_digest: str) -> bool:
    """Check bytes against an expected digest (case-insensitive).

    :param data: Complete content; never a partial buffer.
    :param expected_hex_digest: Hex SHA-256 digest.
    :returns: ``True`` if the digests match.
    """

    return sha256_hex(data) == expected_hex_digest.strip().lower()


def expected_digest(manifest: Mapping[str, str], asset: str) -> str:
    """Look up the manifest digest for an asset.

    :param manifest: Asset name to digest mapping.
    :param asset: Asset file name.
    :returns: Lowercase hex digest.
    :raises MissingChecksumEntryError: If the asset is not listed.
    """

    want: str | None = manifest.get(asset)
    if want is None or len(want) == 0:
        raise MissingChecksumEntryError(asset)
    return want.lower()


def require_digest(data: bytes, *, asset: str, expected: str, source: str) -> None:
    """Verify bytes and raise on mismatch.

    :param data: Complete asset content.
    :param asset: Asset file name (for the error message).
    :param expected: Manifest digest.
    :param source: Where the bytes came from (for the error message).
    :raises ChecksumMismatchError: If the digest does not match.
    """

    actual: str = sha256_hex(data)
    if actual != expected.strip().lower():
        raise ChecksumMismatchError(asset=asset, expected=expected.lower(), actual=actual, source=source)


def parse_manifest(text: str, *, origin: str) -> dict[str, str]:
    """Parse and validate manifest JSON.

    :param text: JSON document.
    :param origin: Human-readable origin used in errors.
    :returns: Mapping with lowercased digests.
    :raises ChecksumManifestError: If the document is not a valid manifest.
    """

    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as e:
        raise ChecksumManifestError(f"Invalid checksum manifest JSON in {origin}: {e}") from e

    if isinstance(raw, dict) is False:
        raise ChecksumManifestError(f"Checksum manifest {origin} must be a JSON object.")

    out: dict[str, str] = {}
    for name, digest in raw.items():
        if isinstance(digest, str) is False or _HEX_DIGEST_RE.match(digest) is None:
            raise ChecksumManifestError(
                f"Checksum manifest {origin} has an invalid SHA-256 for {name!r}: {digest!r}"
            )
        out[name] = digest.lower()
    return out


def load_manifest(path: pathlib.Path) -> dict[str, str]:
    """Load a manifest file from disk.

    :param path: Manifest JSON path.
    :returns: Asset name to digest mapping.
    :raises ChecksumManifestError: If the file is unreadable or invalid.
    """

    try:
        text: str = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ChecksumManifestError(f"Cannot read checksum manifest {path}: {e}") from e
    return parse_manifest(text, origin=str(path))


def packaged_manifest() -> Mapping[str, str]:
    """Return the manifest shipped inside the package.

    Loaded once per process and never reloaded.

    :returns: Read-only view of the asset name to digest mapping.
    """

    global _PACKAGED_MANIFEST

    if _PACKAGED_MANIFEST is None:
        resource = importlib.resources.files("mmapio").joinpath(MANIFEST_RESOURCE)
        text: str = resource.read_text(encoding="utf-8")
        _PACKAGED_MANIFEST = parse_manifest(text, origin=f"mmapio/{MANIFEST_RESOURCE}")
    return _PACKAGED_MANIFEST


def default_asset_regex(base_name: str) -> re.Pattern[str]:
    """Build the asset file name pattern for a base name.

    :param base_name: Library base name.
    :returns: Compiled pattern matching every published asset name.
    """

    return re.compile(
        rf"^{re.escape(base_name)}-(windows|linux|macos)-(x86_64|aarch64)\.(dll|so|dylib)$"
    )


def collect_checksums(
    in_dir: pathlib.Path,
    *,
    name_regex: re.Pattern[str],
    strict: bool,
    fail_on_empty: bool,
    logger: logging.Logger,
) -> dict[str, str]:
    """Hash every matching asset under a directory, keyed by basename.

    :param in_dir: Directory to walk recursively (symlinks are not followed).
    :param name_regex: Pattern a basename must match to be included.
    :param strict: Fail when the same basename appears at two paths.
    :param fail_on_empty: Fail when nothing matched.
    :param logger: Logger for progress output.
    :returns: Asset name to digest mapping.
    :raises ChecksumManifestError: On duplicates (strict), no matches (fail_on_empty),
        or a missing input directory.
    """

    if in_dir.is_dir() is False:
        raise ChecksumManifestError(f"Input directory does not exist: {in_dir}")

    mapping: dict[str, str] = {}
    seen_paths: dict[str, pathlib.Path] = {}
    visited: int = 0

    for dirpath, dirnames, filenames in os.walk(in_dir, followlinks=False):
        dirnames.sort()
        for name in sorted(filenames):
            path: pathlib.Path = pathlib.Path(dirpath) / name
            if path.is_symlink() is True or path.is_file() is False:
                continue
            visited += 1

            if name_regex.match(name) is None:
                if logger.isEnabledFor(logging.DEBUG) is True:
                    logger.debug(f"mmapio: skip {path}")
                continue

            previous: pathlib.Path | None = seen_paths.get(name)
            if previous is not None and previous != path:
                msg: str = f"Duplicate asset basename {name!r} at:\n  - {previous}\n  - {path}"
                if strict is True:
                    raise ChecksumManifestError(msg)
                logger.warning(f"mmapio: {msg}\n  -> last one wins (non-strict mode)")

            digest: str = sha256_file(path)
            mapping[name] = digest
            seen_paths[name] = path
            if logger.isEnabledFor(logging.DEBUG) is True:
                logger.debug(f"mmapio: {name} sha256={digest}")

    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"mmapio: visited={visited}, matched={len(mapping)}")

    if fail_on_empty is True and len(mapping) == 0:
        raise ChecksumManifestError(
            f"No matching assets found in {str(in_dir)!r} (regex={name_regex.pattern})"
        )
    return mapping


def render_manifest(mapping: Mapping[str, str], *, pretty: bool) -> str:
    """Serialize a manifest with sorted keys for stable diffs.

    :param mapping: Asset name to digest mapping.
    :param pretty: Indent two spaces and end with a newline.
    :returns: JSON text.
    """

    ordered: dict[str, str] = {k: mapping[k] for k in sorted(mapping)}
    if pretty is True:
        return json.dumps(ordered, indent=2) + "\n"
    return json.dumps(ordered, separators=(",", ":"))


def write_manifest(path: pathlib.Path, text: str) -> None:
    """Write rendered manifest text, creating parent directories.

    :param path: Output file.
    :param text: Rendered JSON.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
