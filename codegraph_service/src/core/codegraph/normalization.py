# codegraph_service/src/core/codegraph/normalization.py
"""
Body normalization for change detection.

Two bodies are considered the same element when their normalized forms are
equal. Comment syntax depends on the element's language:

- Python (and other ``#`` languages): ``#`` line comments only. ``//`` is
  floor division and is never stripped.
- JavaScript, TypeScript and other C-style languages: ``/* ... */`` block
  comments and ``//`` line comments.
- CSS: ``/* ... */`` block comments only.
- Unknown language: ``/* ... */`` block comments, ``#`` line comments, and
  ``//`` line comments only when the marker begins the line or follows a
  statement delimiter (``;`` ``{`` ``}`` ``,`` ``(`` ``[``). ``a // 2``
  keeps its operator.

Line comment markers are only recognized at the start of a line or after
whitespace, so ``http://host``, ``a#b`` and ``this.#field`` are left alone.
Finally every run of whitespace, newlines included, collapses to one space
and the result is stripped. ``None`` normalizes to the empty string.

Comment markers inside string literals are not recognized; since both sides
go through the same rule this can only hide a difference that lives entirely
inside such a literal.
"""

import re
from typing import Optional

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_HASH_COMMENT = re.compile(r"(^|(?<=\s))#.*?$", re.MULTILINE)
_SLASH_COMMENT = re.compile(r"(^|(?<=\s))//.*?$", re.MULTILINE)
_DELIMITED_SLASH_COMMENT = re.compile(r"(^|[;{},(\[])[ \t]*//.*?$", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")

HASH_LANGUAGES = frozenset({"python", "py", "ruby", "rb", "shell", "sh", "bash", "yaml", "yml"})
SLASH_LANGUAGES = frozenset({
    "javascript", "js", "jsx", "typescript", "ts", "tsx",
    "java", "c", "cpp", "c++", "csharp", "c#", "go", "rust", "swift", "kotlin",
    "scss", "less",
})
BLOCK_ONLY_LANGUAGES = frozenset({"css"})


def _strip_comments(text: str, language: Optional[str]) -> str:
    lang = (language or "").strip().lower()
    if lang in HASH_LANGUAGES:
        return _HASH_COMMENT.sub("", text)
    if lang in SLASH_LANGUAGES:
        return _SLASH_COMMENT.sub("", _BLOCK_COMMENT.sub(" ", text))
    if lang in BLOCK_ONLY_LANGUAGES:
        return _BLOCK_COMMENT.sub(" ", text)
    text = _BLOCK_COMMENT.sub(" ", text)
    text = _DELIMITED_SLASH_COMMENT.sub(r"\1", text)
    return _HASH_COMMENT.sub("", text)


def normalize_body(body: Optional[str], language: Optional[str] = None) -> str:
    if not body:
        return ""
    text = _strip_comments(body, language)
    return _WHITESPACE.sub(" ", text).strip()


def bodies_match(left: Optional[str], right: Optional[str], language: Optional[str] = None) -> bool:
    return normalize_body(left, language) == normalize_body(right, language)
