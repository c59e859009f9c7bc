from __future__ import annotations

ELLIPSIS = "..."


def truncate(text: str, width: int) -> str:
    """Cut ``text`` to at most ``width`` characters, ending with ``...`` when cut.

    Widths shorter than the ellipsis keep only part of it, so the result never
    exceeds ``width``.
    """
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    keep = max(0, width - len(ELLIPSIS))
    return (text[:keep] + ELLIPSIS)[:width]
