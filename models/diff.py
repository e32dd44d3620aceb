"""
Diff Engine - Comparing Two Points in a Document's History

EXPLANATION FOR VIVA:
=====================
A comparison names two endpoints:
- an OLD endpoint, which must be a stored version (0, 1, 2 ...)
- a NEW endpoint, which is either a stored version or "current"
  (the live document, which may differ from its last snapshot)

Instead of comparing strings with "current" all over the code, an endpoint is
a small tagged value, VersionRef, built once by parse_version_ref and resolved
here.

The result is purely structural: for title and for content we return the two
raw strings labelled "from" (old) and "to" (new). Line-by-line highlighting is
left to whoever renders the result.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.errors import InvalidVersionIndex
from .version import get_version_at

CURRENT = "current"


@dataclass(frozen=True)
class VersionRef:
    """Either Index(n) or Current."""

    position: Optional[int] = None

    @classmethod
    def index(cls, n: int) -> "VersionRef":
        return cls(position=n)

    @classmethod
    def current(cls) -> "VersionRef":
        return cls(position=None)

    @property
    def is_current(self) -> bool:
        return self.position is None

    def to_json(self):
        return CURRENT if self.is_current else self.position


def parse_version_ref(raw: Any, allow_current: bool = True) -> VersionRef:
    """
    Turn a query-string value into a VersionRef.

    Accepts ints and decimal strings; "current" only where allowed.
    Anything else is an InvalidVersionIndex.
    """
    if isinstance(raw, VersionRef):
        if raw.is_current and not allow_current:
            raise InvalidVersionIndex("Invalid version indexes")
        return raw

    if isinstance(raw, bool) or raw is None:
        raise InvalidVersionIndex("Invalid version indexes")

    if isinstance(raw, int):
        position = raw
    else:
        text = str(raw).strip()
        if allow_current and text == CURRENT:
            return VersionRef.current()
        try:
            position = int(text)
        except ValueError:
            raise InvalidVersionIndex("Invalid version indexes")

    if position < 0:
        raise InvalidVersionIndex("Invalid version indexes")
    return VersionRef.index(position)


def _resolve(document, ref: VersionRef) -> Tuple[str, str]:
    if ref.is_current:
        return document.title or "", document.content or ""
    snapshot = get_version_at(document, ref.position)
    return snapshot.title or "", snapshot.content or ""


def compute_diff(document, old: VersionRef, new: VersionRef) -> Dict[str, Any]:
    """
    Compare two endpoints of ``document``.

    ``old`` must be a stored version; ``new`` may be Current.
    """
    if old.is_current:
        raise InvalidVersionIndex("Invalid version indexes")

    old_title, old_content = _resolve(document, old)
    new_title, new_content = _resolve(document, new)

    return {
        "version1": old.to_json(),
        "version2": new.to_json(),
        "titleDiff": {"from": old_title, "to": new_title},
        "contentDiff": {"from": old_content, "to": new_content},
    }
