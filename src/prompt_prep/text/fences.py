"""Code-fence aware segmentation and Han character helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass

_CODE_FENCE = re.compile(r"```[\s\S]*?```")

# CJK Unified Ideographs, Extension A, compatibility ideographs and the
# supplementary-plane extensions.
HAN_RANGES = "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\U00020000-\U0003134f"
HAN_CHAR = re.compile(f"[{HAN_RANGES}]")
HAN_RUN = re.compile(f"[{HAN_RANGES}]+")


@dataclass(slots=True, frozen=True)
class Segment:
    text: str
    is_code: bool


def split_fences(text: str | None) -> list[Segment]:
    """Split text into alternating prose and fenced-code segments.

    An unterminated fence is treated as prose.
    """

    if not text:
        return [Segment("", False)]
    segments: list[Segment] = []
    last = 0
    for match in _CODE_FENCE.finditer(text):
        if match.start() > last:
            segments.append(Segment(text[last : match.start()], False))
        segments.append(Segment(match.group(0), True))
        last = match.end()
    if last < len(text):
        segments.append(Segment(text[last:], False))
    return segments


def strip_fences(text: str | None) -> str:
    """Return only the prose parts of `text`."""
    return "".join(seg.text for seg in split_fences(text) if not seg.is_code)


def has_fence(text: str) -> bool:
    return _CODE_FENCE.search(text) is not None


def fence_safe_cut(text: str, cut: int) -> int:
    """Move `cut` back to the opening fence when it lands inside a code block."""

    for match in _CODE_FENCE.finditer(text):
        if match.start() >= cut:
            break
        if cut < match.end():
            return match.start()
    return cut


def count_han(text: str, *, stop_after: int | None = None) -> int:
    count = 0
    for _ in HAN_CHAR.finditer(text):
        count += 1
        if stop_after is not None and count >= stop_after:
            break
    return count
