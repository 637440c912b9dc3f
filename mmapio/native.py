"""ctypes binding for the native mapping engine.

Two symbol sets exist. The full set adds ``mmap_open_write_with_size``;
older binaries only export the legacy six. :func:`bind` tries the full set
first and falls back to the legacy one.
"""

from collections.abc import Callable
from dataclasses import dataclass
import ctypes
import enum
import logging
import os

from mmapio.errors import LibraryLoadError


class InterfaceKind(enum.Enum):
    """Which symbol set a loaded binary exposes."""

    FULL = "full"
    LEGACY = "legacy"


@dataclass(frozen=True, slots=True)
class SymbolSpec:
    """C signature of one exported symbol.

    :ivar name: Exported symbol name.
    :ivar argtypes: ctypes argument types.
    :ivar restype: ctypes result type (``None`` for void).
    """

    name: str
    argtypes: tuple[object, ...]
    restype: object


_SIZE_PTR = ctypes.POINTER(ctypes.c_size_t)

LEGACY_SYMBOLS: tuple[SymbolSpec, ...] = (
    SymbolSpec("mmap_open", (ctypes.c_char_p, _SIZE_PTR), ctypes.c_void_p),
    SymbolSpec("mmap_open_write", (ctypes.c_char_p, _SIZE_PTR), ctypes.c_void_p),
    SymbolSpec(
        "mmap_write",
        (ctypes.c_void_p, ctypes.c_size_t, ctypes.c_void_p, ctypes.c_size_t),
        ctypes.c_size_t,
    ),
    SymbolSpec(
        "mmap_read",
        (ctypes.c_void_p, ctypes.c_void_p, ctypes.c_size_t, ctypes.c_size_t),
        ctypes.c_size_t,
    ),
    SymbolSpec("mmap_flush", (ctypes.c_void_p, ctypes.c_size_t, ctypes.c_size_t), ctypes.c_int32),
    SymbolSpec("mmap_close", (ctypes.c_void_p, ctypes.c_size_t), None),
)

FULL_SYMBOLS: tuple[SymbolSpec, ...] = LEGACY_SYMBOLS + (
    SymbolSpec("mmap_open_write_with_size", (ctypes.c_char_p, _SIZE_PTR, ctypes.c_size_t), ctypes.c_void_p),
)


@dataclass(frozen=True, slots=True)
class BoundInterface:
    """Native entry points bound from one library.

    :ivar kind: Symbol set that was bound.
    :ivar path: Library path that was loaded.
    :ivar library: Loaded library object (kept alive with the functions).
    :ivar mmap_open: ``(path, len_out) -> region | None``.
    :ivar mmap_open_write: ``(path, len_out) -> region | None``.
    :ivar mmap_write: ``(region, offset, src, length) -> copied``.
    :ivar mmap_read: ``(dst, region, offset, length) -> copied``.
    :ivar mmap_flush: ``(region, offset, length) -> status``.
    :ivar mmap_close: ``(region, length) -> None``.
    :ivar mmap_open_write_with_size: ``(path, len_out, size) -> region | None``;
        ``None`` for the legacy set.
    """

    kind: InterfaceKind
    path: str
    library: object
    mmap_open: Callable[..., int | None]
    mmap_open_write: Callable[..., int | None]
    mmap_write: Callable[..., int]
    mmap_read: Callable[..., int]
    mmap_flush: Callable[..., int]
    mmap_close: Callable[..., None]
    mmap_open_write_with_size: Callable[..., int | None] | None


def bind(
    path: str | os.PathLike[str],
    *,
    dlopen: Callable[[str], object] = ctypes.CDLL,
    logger: logging.Logger | None = None,
) -> BoundInterface:
    """Load a library and bind the richest symbol set it exports.

    :param path: Library path.
    :param dlopen: Loader returning an object whose attributes are the symbols.
    :param logger: Optional logger for progress output.
    :returns: Bound interface.
    :raises LibraryLoadError: If the library cannot be loaded or lacks legacy symbols.
    """

    lib_path: str = os.fspath(path)
    try:
        library: object = dlopen(lib_path)
    except OSError as e:
        raise LibraryLoadError(f"Cannot load native library {lib_path}: {e}", path=lib_path) from e

    kind: InterfaceKind = InterfaceKind.FULL
    try:
        functions: dict[str, Callable[..., object]] = _bind_symbols(library, FULL_SYMBOLS)
    except AttributeError as full_err:
        if logger is not None:
            logger.info(f"mmapio: {lib_path} lacks the full symbol set ({full_err}); using legacy symbols")
        kind = InterfaceKind.LEGACY
        try:
            functions = _bind_symbols(library, LEGACY_SYMBOLS)
        except AttributeError as e:
            raise LibraryLoadError(
                f"Native library {lib_path} does not export the mmap symbols: {e}", path=lib_path
            ) from e

    if logger is not None:
        logger.info(f"mmapio: bound {kind.value} interface from {lib_path}")

    return BoundInterface(
        kind=kind,
        path=lib_path,
        library=library,
        mmap_open=functions["mmap_open"],
        mmap_open_write=functions["mmap_open_write"],
        mmap_write=functions["mmap_write"],
        mmap_read=functions["mmap_read"],
        mmap_flush=functions["mmap_flush"],
        mmap_close=functions["mmap_close"],
        mmap_open_write_with_size=functions.get("mmap_open_write_with_size"),
    )


def _bind_symbols(library: object, specs: tuple[SymbolSpec, ...]) -> dict[str, Callable[..., object]]:
    """Look up and type every symbol in a set.

    All symbols are looked up before any is returned, so a partial set never
    leaks out.

    :param library: Loaded library.
    :param specs: Symbols to bind.
    :returns: Symbol name to callable.
    :raises AttributeError: If any symbol is missing.
    """

    functions: dict[str, Callable[..., object]] = {}
    for spec in specs:
        fn = getattr(library, spec.name)
        fn.argtypes = list(spec.argtypes)
        fn.restype = spec.restype
        functions[spec.name] = fn
    return functions
