"""
Grapheme cluster segmentation and display widths.

Key functions:
- segment: Split text into user-perceived characters with their widths
- text_width: Number of terminal columns a string occupies
- visible_width: Like text_width, ignoring ANSI escape sequences
- truncate_to_width: Truncate text to a width without splitting clusters

Cluster boundaries follow the extended grapheme cluster rules of UAX #29
for the cases terminals care about (CR LF, controls, combining marks, ZWJ
emoji sequences, flags, Hangul jamo). Per-code-point widths come from
wcwidth; a cluster takes the width of its base character, widened to 2 for
emoji presentation and flags.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterator

from wcwidth import wcwidth

ZWNJ = "\u200c"
ZWJ = "\u200d"
VS15 = "\ufe0e"
VS16 = "\ufe0f"

ANSI_PATTERN = re.compile(
    r"\x1b\[[0-9;?<>=!]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[P_^][^\x07\x1b]*(?:\x07|\x1b\\)"
)

# Approximation of Extended_Pictographic
_PICTOGRAPHIC_RANGES = (
    (0x00A9, 0x00A9),
    (0x00AE, 0x00AE),
    (0x203C, 0x203C),
    (0x2049, 0x2049),
    (0x2122, 0x2122),
    (0x2139, 0x2139),
    (0x2194, 0x21AA),
    (0x231A, 0x23FF),
    (0x24C2, 0x24C2),
    (0x25AA, 0x25FE),
    (0x2600, 0x27BF),
    (0x2934, 0x2935),
    (0x2B05, 0x2B55),
    (0x3030, 0x3030),
    (0x303D, 0x303D),
    (0x3297, 0x3299),
    (0x1F000, 0x1F0FF),
    (0x1F10D, 0x1F1AD),
    (0x1F200, 0x1FAFF),
)


@dataclass(frozen=True)
class GraphemeSpan:
    """One grapheme cluster: UTF-8 byte range, display width and text."""
    start: int
    end: int
    width: int
    text: str


def _is_pictographic(cp: int) -> bool:
    for low, high in _PICTOGRAPHIC_RANGES:
        if low <= cp <= high:
            return True
    return False


def _is_regional_indicator(cp: int) -> bool:
    return 0x1F1E6 <= cp <= 0x1F1FF


def _is_control(char: str) -> bool:
    if char in (ZWNJ, ZWJ):
        return False
    category = unicodedata.category(char)
    if category in ("Cc", "Zl", "Zp"):
        return True
    if category == "Cf":
        # Tag characters extend emoji flags
        return not 0xE0020 <= ord(char) <= 0xE007F
    return False


def _is_extend(char: str) -> bool:
    cp = ord(char)
    if char in (ZWNJ, ZWJ):
        return True
    if 0xFE00 <= cp <= 0xFE0F or 0xE0100 <= cp <= 0xE01EF:
        return True
    if 0x1F3FB <= cp <= 0x1F3FF or 0xE0020 <= cp <= 0xE007F:
        return True
    return unicodedata.category(char) in ("Mn", "Me", "Mc")


def _hangul_type(cp: int) -> str | None:
    if 0x1100 <= cp <= 0x115F or 0xA960 <= cp <= 0xA97C:
        return "L"
    if 0x1160 <= cp <= 0x11A7 or 0xD7B0 <= cp <= 0xD7C6:
        return "V"
    if 0x11A8 <= cp <= 0x11FF or 0xD7CB <= cp <= 0xD7FB:
        return "T"
    if 0xAC00 <= cp <= 0xD7A3:
        return "LV" if (cp - 0xAC00) % 28 == 0 else "LVT"
    return None


def _joins_hangul(prev: str | None, current: str | None) -> bool:
    if prev is None or current is None:
        return False
    if prev == "L":
        return current in ("L", "V", "LV", "LVT")
    if prev in ("LV", "V"):
        return current in ("V", "T")
    if prev in ("LVT", "T"):
        return current == "T"
    return False


def _cluster_width(cluster: str) -> int:
    first = cluster[0]
    if _is_control(first):
        return 0

    cp = ord(first)
    if _is_regional_indicator(cp):
        return 2 if len(cluster) > 1 and _is_regional_indicator(ord(cluster[1])) else 1

    width = wcwidth(first)
    if width < 0:
        return 0
    if width == 0:
        # Cluster made of marks only, e.g. a lone combining accent
        width = max((max(wcwidth(c), 0) for c in cluster), default=0)

    if width == 1 and VS16 in cluster and _is_pictographic(cp):
        width = 2
    if width == 2 and VS15 in cluster and len(cluster) == 2 and cp < 0x1F000:
        # Text presentation of a symbol wcwidth counts as wide
        width = 1
    return min(width, 2)


def _iter_clusters(text: str) -> Iterator[str]:
    if not text:
        return

    start = 0
    prev = text[0]
    prev_hangul = _hangul_type(ord(prev))
    # Cluster so far ends with Extended_Pictographic Extend* (and then ZWJ)
    pictographic = _is_pictographic(ord(prev))
    zwj_ready = False
    ri_run = 1 if _is_regional_indicator(ord(prev)) else 0

    for index in range(1, len(text)):
        char = text[index]
        cp = ord(char)
        hangul = _hangul_type(cp)

        if prev == "\r" and char == "\n":
            joined = True
        elif prev in ("\r", "\n") or _is_control(prev) or char in ("\r", "\n") or _is_control(char):
            joined = False
        elif _joins_hangul(prev_hangul, hangul):
            joined = True
        elif _is_extend(char):
            joined = True
        elif zwj_ready and _is_pictographic(cp):
            joined = True
        elif _is_regional_indicator(cp) and ri_run % 2 == 1:
            joined = True
        else:
            joined = False

        if not joined:
            yield text[start:index]
            start = index
            pictographic = _is_pictographic(cp)
            zwj_ready = False
            ri_run = 1 if _is_regional_indicator(cp) else 0
        else:
            if _is_pictographic(cp):
                pictographic, zwj_ready = True, False
            elif char == ZWJ:
                zwj_ready, pictographic = pictographic, False
            elif not _is_extend(char):
                pictographic = zwj_ready = False
            else:
                zwj_ready = False
            ri_run = ri_run + 1 if _is_regional_indicator(cp) else 0

        prev = char
        prev_hangul = hangul

    yield text[start:]


def _iter_spans(text: str) -> Iterator[GraphemeSpan]:
    offset = 0
    for cluster in _iter_clusters(text):
        size = len(cluster.encode("utf-8", errors="surrogatepass"))
        yield GraphemeSpan(
            start=offset,
            end=offset + size,
            width=_cluster_width(cluster),
            text=cluster,
        )
        offset += size


class Segmentation:
    """
    Lazy, restartable sequence of grapheme spans for one string.

    Each iteration recomputes the spans from the text, so iterating twice
    yields equal results.
    """

    def __init__(self, text: str) -> None:
        self._text = text

    @property
    def text(self) -> str:
        return self._text

    def __iter__(self) -> Iterator[GraphemeSpan]:
        return _iter_spans(self._text)

    @property
    def width(self) -> int:
        return sum(span.width for span in self)

    def __repr__(self) -> str:
        return f"Segmentation({self._text!r})"


def segment(text: str) -> Segmentation:
    """
    Split text into grapheme clusters.

    Example:
        >>> [(s.text, s.width) for s in segment("é中")]
        [('é', 1), ('中', 2)]
    """
    return Segmentation(text)


def text_width(text: str) -> int:
    """Number of terminal columns ``text`` occupies."""
    return sum(span.width for span in _iter_spans(text))


def strip_ansi(text: str) -> str:
    """Remove CSI, OSC, DCS and APC escape sequences from text."""
    return ANSI_PATTERN.sub("", text)


def visible_width(text: str) -> int:
    """
    Calculate the visible width of text, ignoring ANSI codes.

    Example:
        >>> visible_width("\x1b[31mHello\x1b[0m")
        5
    """
    return text_width(strip_ansi(text))


def truncate_to_width(
    text: str,
    max_width: int,
    ellipsis: str = "...",
    pad: bool = False,
) -> str:
    """
    Truncate text to max_width columns, preserving ANSI codes.

    Clusters are never split: a wide character that does not fit is dropped
    whole.

    Args:
        text: Input text
        max_width: Maximum visible width
        ellipsis: String to append when truncated
        pad: Whether to pad with spaces if shorter

    Returns:
        Truncated text with ANSI codes preserved
    """
    if max_width <= 0:
        return ""

    total_width = visible_width(text)
    if total_width <= max_width:
        if pad and total_width < max_width:
            return text + (" " * (max_width - total_width))
        return text

    ellipsis_width = visible_width(ellipsis)
    if ellipsis_width > max_width:
        return truncate_to_width(ellipsis, max_width, ellipsis="", pad=pad)

    budget = max_width - ellipsis_width
    result: list[str] = []
    current_width = 0
    position = 0
    full = False

    for match in [*ANSI_PATTERN.finditer(text), None]:
        plain_end = match.start() if match else len(text)
        if not full:
            for span in segment(text[position:plain_end]):
                if current_width + span.width > budget:
                    full = True
                    break
                result.append(span.text)
                current_width += span.width
        if match is not None:
            # Keep styling codes so resets after the cut still apply
            result.append(match.group(0))
            position = match.end()

    result.append(ellipsis)
    current_width += ellipsis_width
    if pad and current_width < max_width:
        result.append(" " * (max_width - current_width))
    return "".join(result)
