"""Mapping between virtual paths and object store keys.

A virtual path is a tuple of segments, the empty tuple being the root of a
bucket. Keys are the segments joined with ``/``. Nothing here does I/O.
"""

from ..constants import PLACEHOLDER_NAMES, SEPARATOR
from ..exceptions import InvalidPath

__all__ = [
    "VirtualPath",
    "parse_path",
    "join_path",
    "validate_segment",
    "to_key",
    "parent_of",
    "name_of",
    "child_of",
    "is_prefix_of",
    "replace_prefix",
    "folder_prefix",
    "is_placeholder",
]

VirtualPath = tuple[str, ...]


def validate_segment(segment: str) -> str:
    """Validate a single path segment and return it unchanged."""
    if not segment:
        raise InvalidPath("Path segment cannot be empty")
    if SEPARATOR in segment:
        raise InvalidPath(f"Path segment cannot contain '{SEPARATOR}': {segment!r}")
    if segment in (".", ".."):
        raise InvalidPath(f"Path segment cannot be {segment!r}")
    return segment


def parse_path(path: str | VirtualPath) -> VirtualPath:
    """Parse a path string into segments.

    Surrounding separators are tolerated; empty inner segments are not.
    """
    if isinstance(path, tuple):
        return tuple(validate_segment(s) for s in path)
    clean = path.strip(SEPARATOR)
    if not clean:
        return ()
    return tuple(validate_segment(s) for s in clean.split(SEPARATOR))


def join_path(path: VirtualPath) -> str:
    """Join segments back into a path string (no leading or trailing slash)."""
    return SEPARATOR.join(path)


def to_key(path: str | VirtualPath) -> str:
    """Return the object store key for a virtual path."""
    return join_path(parse_path(path))


def parent_of(path: VirtualPath) -> VirtualPath:
    """Return the parent path; the parent of the root is the root."""
    return path[:-1]


def name_of(path: VirtualPath) -> str:
    """Return the last segment, or an empty string for the root."""
    return path[-1] if path else ""


def child_of(path: VirtualPath, name: str) -> VirtualPath:
    return path + (validate_segment(name),)


def is_prefix_of(a: str, b: str) -> bool:
    """Return True if key ``b`` equals ``a`` or lies underneath it.

    ``"foo"`` is not a prefix of ``"foobar"``; the separator boundary is
    required. The empty string (the root) is a prefix of every key.
    """
    if not a:
        return True
    return b == a or b.startswith(a + SEPARATOR)


def replace_prefix(key: str, old: str, new: str) -> str:
    """Swap the ``old`` prefix of ``key`` for ``new``, keeping the remainder."""
    if not is_prefix_of(old, key):
        raise InvalidPath(f"Key {key!r} is not under {old!r}")
    remainder = key[len(old) :]
    if not old:
        remainder = SEPARATOR + remainder if remainder else ""
    if not new:
        return remainder.lstrip(SEPARATOR)
    return new + remainder


def folder_prefix(key: str) -> str:
    """Return the listing prefix for a folder key (``""`` for the root)."""
    return f"{key}{SEPARATOR}" if key else ""


def is_placeholder(key: str) -> bool:
    """Return True if the key is an empty-folder placeholder object."""
    return key.rsplit(SEPARATOR, 1)[-1] in PLACEHOLDER_NAMES
