from __future__ import annotations

import re
import stat

from depotpack.config import FILETYPE_ALIASES, EntryKind
from depotpack.exceptions import FiletypeError

_FILETYPE_PATTERN = re.compile(r"(?P<base>[a-z]+)(?:\+(?P<modifiers>[A-Za-z]+))?")

READ_BITS = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH
EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def canonical_filetype(raw: str) -> str:
    """Resolve a legacy file type alias (``xtext``) to its ``base+modifiers`` form (``text+x``)."""
    return FILETYPE_ALIASES.get(raw, raw)


def filetype_mode(raw: str) -> tuple[EntryKind, int]:
    """Map a depot file type to the entry kind and permission bits of its checkout.

    Files are read-only for everyone; the ``x`` modifier adds execute bits and
    the ``w`` modifier adds the owner write bit. Other modifiers (compression,
    keyword expansion, locking, revision purging) have no effect on the mode.

    Args:
        raw (str): the file type as reported by the server, e.g. ``text``,
            ``binary+x`` or the legacy ``ctext``

    Raises:
        FiletypeError: if the file type does not match ``base[+modifiers]``

    Returns:
        tuple[EntryKind, int]: the entry kind and its permission bits
    """
    match = _FILETYPE_PATTERN.fullmatch(canonical_filetype(raw))
    if match is None:
        raise FiletypeError(filetype=raw)
    base = match.group("base")
    modifiers = match.group("modifiers") or ""

    kind = EntryKind.SYMLINK if base == "symlink" else EntryKind.FILE
    mode = READ_BITS
    if "x" in modifiers:
        mode |= EXECUTE_BITS
    if "w" in modifiers:
        mode |= stat.S_IWUSR
    return kind, mode
