"""Prompt sanitizing ahead of keyword matching.

Mode names that appear inside tag bodies, URLs, file paths or code are not
requests to activate a mode. Each pass runs on the output of the previous one,
in this order, so a later pass cannot re-expose text an earlier pass removed.
"""

import re

# <tag ...>body</tag>, multi-line
_TAG_BLOCK_RE = re.compile(r"<(\w[\w-]*)[\s>][\s\S]*?</\1>")
# <tag/> and <tag attr="x" />
_SELF_CLOSING_RE = re.compile(r"<\w[\w-]*(?:\s[^>]*)?\s*/>")
_URL_RE = re.compile(r"https?://[^\s)>\]]+")
# foo/bar, /foo/bar/baz.py; the boundary character is kept
_PATH_RE = re.compile(r"(^|[\s\"'`(])/?(?:[\w.-]+/)+[\w.-]+", re.MULTILINE)
_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]+`")


def sanitize(text: str) -> str:
    """Strip tag blocks, self-closing tags, URLs, paths, fences and inline code.

    Case is preserved; callers lower-case the result before matching.
    """
    if not text:
        return ""
    text = _TAG_BLOCK_RE.sub("", text)
    text = _SELF_CLOSING_RE.sub("", text)
    text = _URL_RE.sub("", text)
    text = _PATH_RE.sub(r"\1", text)
    text = _CODE_FENCE_RE.sub("", text)
    text = _INLINE_CODE_RE.sub("", text)
    return text
