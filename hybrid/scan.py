"""Text scanning helpers shared by the pattern analyzers.

Bodies arrive as raw C++ text. Analyzers run their regexes over a masked
copy where comments and literal contents are blanked out, so offsets in the
masked text line up with the original.
"""

from __future__ import annotations

_CLOSERS: dict[str, str] = {"(": ")", "[": "]", "{": "}", "<": ">"}


def mask(text: str) -> str:
    """Blank out comments and string/char literal contents, keeping offsets.

    Quotes stay in place; everything between them becomes spaces. Newlines
    are preserved so line numbers survive.
    """
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c == "/" and i + 1 < n and text[i + 1] == "/":
            while i < n and text[i] != "\n":
                out.append(" ")
                i += 1
        elif c == "/" and i + 1 < n and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            end = n if end < 0 else end + 2
            out.extend("\n" if ch == "\n" else " " for ch in text[i:end])
            i = end
        elif c == '"' or c == "'":
            out.append(c)
            i += 1
            while i < n and text[i] != c and text[i] != "\n":
                if text[i] == "\\" and i + 1 < n:
                    out.append("  ")
                    i += 2
                    continue
                out.append(" ")
                i += 1
            if i < n:
                out.append(text[i])
                i += 1
        else:
            out.append(c)
            i += 1
    return "".join(out)


def match_delimited(text: str, open_index: int, angle: bool = False) -> int:
    """Index of the bracket closing the one at open_index, or -1.

    Nested brackets of every kind are tracked. Angle brackets only count
    when angle is set (type spellings, not expressions).
    """
    opener = text[open_index]
    if opener not in _CLOSERS or (opener == "<" and not angle):
        return -1
    stack: list[str] = []
    i = open_index
    while i < len(text):
        c = text[i]
        if c in _CLOSERS and (c != "<" or angle):
            stack.append(_CLOSERS[c])
        elif stack and c == stack[-1]:
            stack.pop()
            if not stack:
                return i
        elif c in ")]}" or (angle and c == ">"):
            # mismatched closer
            return -1
        i += 1
    return -1


def split_spans(text: str, sep: str = ",", angle: bool = False) -> list[tuple[int, int]]:
    """(start, end) spans of the pieces between top-level separators."""
    if not text.strip():
        return []
    spans: list[tuple[int, int]] = []
    depth = 0
    start = 0
    opens = "([{<" if angle else "([{"
    closes = ")]}>" if angle else ")]}"
    for i, c in enumerate(text):
        if c in opens:
            depth += 1
        elif c in closes:
            depth -= 1
        elif c == sep and depth == 0:
            spans.append((start, i))
            start = i + 1
    spans.append((start, len(text)))
    return spans


def split_top_level(text: str, sep: str = ",", angle: bool = False) -> list[str]:
    """Split on sep where no bracket is open. Pieces are stripped.

    Empty input yields an empty list.
    """
    return [text[s:e].strip() for s, e in split_spans(text, sep, angle)]


def split_arguments(original: str, masked: str, open_index: int, close_index: int) -> list[str]:
    """Arguments between a matched pair of brackets.

    Splitting happens on the masked text so commas inside literals and
    comments are ignored; the pieces are cut from the original.
    """
    offset = open_index + 1
    inner = masked[offset:close_index]
    return [
        original[offset + s : offset + e].strip()
        for s, e in split_spans(inner)
        if original[offset + s : offset + e].strip()
    ]


def skip_space(text: str, index: int) -> int:
    while index < len(text) and text[index].isspace():
        index += 1
    return index
