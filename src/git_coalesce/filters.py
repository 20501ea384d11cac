from collections.abc import Iterable
from pathlib import PurePath


def parse_extensions(raw_list: str | Iterable[str]) -> frozenset[str]:
    """Normalizes an extension list into an immutable lookup set.

    Accepts either a comma-separated string (e.g. ``"asp, .INC"``) or an
    iterable of entries. Each entry is stripped, lowercased and given a
    leading dot if it lacks one. Empty entries are dropped.

    Args:
        raw_list (str | Iterable[str]): The raw extension list.

    Returns:
        frozenset[str]: Normalized extensions such as ``{".asp", ".inc"}``.
    """
    items = raw_list.split(",") if isinstance(raw_list, str) else raw_list
    extensions = set()
    for raw in items:
        ext = str(raw).strip().lower()
        if not ext or ext == ".":
            continue
        if not ext.startswith("."):
            ext = "." + ext
        extensions.add(ext)
    return frozenset(extensions)


def matches_extension(path: str | PurePath, extensions: frozenset[str]) -> bool:
    """Returns True if the lowercase suffix of `path` is in `extensions`."""
    return PurePath(path).suffix.lower() in extensions
