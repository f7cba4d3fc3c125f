"""Text and file helpers shared across the navigator."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import orjson
from bs4 import BeautifulSoup

_PARAGRAPH_BREAK = re.compile(r"\s*\n\s*\n\s*")
_WHITESPACE_RUN = re.compile(r"\s+")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


# --- Text Utilities -----------------------------------------------------------

def normalize_whitespace(text: str) -> str:
    """
    Collapse whitespace while keeping paragraph structure.

    Any whitespace run holding two or more newlines becomes a single
    paragraph break ("\\n\\n"); every other run becomes one space.
    """
    text = _CONTROL_CHARS.sub("", text)
    paragraphs = _PARAGRAPH_BREAK.split(text.strip())
    cleaned = (_WHITESPACE_RUN.sub(" ", p).strip() for p in paragraphs)
    return "\n\n".join(p for p in cleaned if p)


def html_to_text(html: str | bytes) -> str:
    """
    Return the visible body text of an HTML page.

    Raw bytes are decoded by BeautifulSoup, which honours a declared
    <meta charset> and otherwise sniffs the encoding.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    root = soup.body if soup.body is not None else soup
    return root.get_text()


def safe_name(value: str) -> str:
    """Reduce an arbitrary identifier to [A-Za-z0-9_-] for table/file names."""
    return re.sub(r"[^A-Za-z0-9_-]+", "_", value).strip("_")


# --- File I/O -----------------------------------------------------------------

def save_json(data: Any, path: str | Path) -> None:
    """Serialise data to JSON using orjson."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))


def load_json(path: str | Path) -> Any:
    """Load JSON data from file."""
    with open(Path(path), "rb") as f:
        return orjson.loads(f.read())
