"""
HTML-aware truncation for content previews.
"""

import math
import re
from typing import List, Union

from shared.errors import ValidationError


MARKUP_RE = re.compile(r"<[^>]*>")
TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9-]*)\b[^>]*?(/?)>")
COMMENT_RE = re.compile(r"<!--.*?(?:-->|\Z)", re.DOTALL)
COMMENT_OPEN = "<!--"
COMMENT_CLOSE = "-->"

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img",
    "input", "link", "meta", "source", "track", "wbr",
})

ELLIPSIS = "..."


def strip_tags(html: str) -> str:
    """Plain text of an HTML fragment."""
    return MARKUP_RE.sub("", html)


def plain_text_preview(html: str, length: int) -> str:
    """First `length` plain-text characters followed by an ellipsis."""
    if length < 0:
        raise ValidationError("Preview length must not be negative", {"length": length})
    return strip_tags(html)[:length] + ELLIPSIS


def _target_length(plain_length: int, budget: Union[int, float]) -> int:
    # bool is an int subclass; True must not mean "one character"
    if isinstance(budget, bool):
        raise ValidationError("Truncation budget must be a fraction or a character count", {"budget": budget})

    if isinstance(budget, int):
        if budget < 0:
            raise ValidationError("Character budget must not be negative", {"budget": budget})
        return budget

    if isinstance(budget, float):
        if not 0.0 <= budget <= 1.0:
            raise ValidationError("Fraction budget must be between 0 and 1", {"budget": budget})
        return math.floor(plain_length * budget)

    raise ValidationError("Truncation budget must be a fraction or a character count", {"budget": repr(budget)})


def truncate_html(html: str, budget: Union[int, float]) -> str:
    """Shorten HTML to a plain-text budget, keeping tags balanced.

    `budget` is either a float fraction (0-1) of the plain-text length or an
    int character count. Markup is copied verbatim and does not count toward
    the budget. Tags left open by the cut are closed in reverse order of
    opening; void and self-closing elements are never closed.
    """
    target = _target_length(len(strip_tags(html)), budget)

    output: List[str] = []
    progress = 0
    inside_tag = False

    for char in html:
        if progress >= target and not inside_tag:
            break

        output.append(char)

        if inside_tag:
            if char == ">":
                inside_tag = False
        elif char == "<":
            inside_tag = True
        else:
            progress += 1

    truncated = "".join(output)

    # A cut inside a comment would swallow the closing tags appended below
    last_open = truncated.rfind(COMMENT_OPEN)
    if last_open != -1 and truncated.find(COMMENT_CLOSE, last_open + len(COMMENT_OPEN)) == -1:
        truncated += COMMENT_CLOSE

    return truncated + "".join(f"</{name}>" for name in reversed(_open_tags(truncated)))


def _open_tags(html: str) -> List[str]:
    """Names of elements opened but not closed, in opening order."""
    stack: List[str] = []

    for match in TAG_RE.finditer(COMMENT_RE.sub("", html)):
        closing, name, self_closing = match.group(1), match.group(2).lower(), match.group(3)

        if closing:
            # Close the most recent matching element; stray closings are ignored
            for index in range(len(stack) - 1, -1, -1):
                if stack[index] == name:
                    del stack[index]
                    break
            continue

        if self_closing or name in VOID_ELEMENTS:
            continue

        stack.append(name)

    return stack
