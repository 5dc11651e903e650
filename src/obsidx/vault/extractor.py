"""Note extractor — raw markdown text into a structured ``Note``.

Frontmatter is parsed with python-frontmatter's YAML handler, headings and
inline links come from one pass over the markdown-it token stream, and
wikilinks and inline tags are picked up with regexes.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote

import yaml
from frontmatter.default_handlers import YAMLHandler
from markdown_it import MarkdownIt

from obsidx.vault.models import DEFAULT_COLLECTION, Note, note_id

logger = logging.getLogger(__name__)

WIKILINK_PATTERN = re.compile(r"\[\[([^\]|]+)(?:\|[^\]]+)?\]\]")
TAG_PATTERN = re.compile(r"(?:^|\s)#([\w/-]+)", re.MULTILINE)

_yaml_handler = YAMLHandler()
_md = MarkdownIt("commonmark")


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a leading YAML block from *text*.

    Returns ``(metadata, body)``. A block that fails to parse, or parses to
    something other than a mapping, yields ``{}`` but is still stripped. An
    unterminated block is not frontmatter at all.
    """
    if not _yaml_handler.detect(text):
        return {}, text

    try:
        fm_text, body = _yaml_handler.split(text)
    except ValueError:
        return {}, text

    body = body.lstrip("\r\n")
    try:
        meta = _yaml_handler.load(fm_text)
    except yaml.YAMLError as exc:
        logger.debug("Unparseable frontmatter ignored: %s", exc)
        return {}, body

    if not isinstance(meta, dict):
        return {}, body
    return _stringify_keys(meta), body


def _stringify_keys(value: Any) -> Any:
    """YAML allows int, bool and date keys; stored metadata uses str keys only."""
    if isinstance(value, dict):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify_keys(v) for v in value]
    return value


def _frontmatter_tags(meta: dict[str, Any]) -> list[str]:
    raw = meta.get("tags", [])
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [t for t in raw if isinstance(t, str)]
    return []


def scan_headings_and_links(body: str) -> tuple[list[str], list[str]]:
    """Single pass over the token stream: heading texts in order, link hrefs."""
    headings: list[str] = []
    links: list[str] = []
    in_heading = False

    for token in _md.parse(body):
        if token.type == "heading_open":
            in_heading = True
            continue
        if token.type == "heading_close":
            in_heading = False
            continue
        if token.type != "inline" or not token.children:
            continue

        spans: list[str] = []
        for child in token.children:
            if child.type == "link_open":
                href = child.attrGet("href")
                if isinstance(href, str) and href:
                    links.append(unquote(href))
            elif in_heading and child.type == "text":
                spans.append(child.content)

        if in_heading:
            text = "".join(spans).strip()
            if text:
                headings.append(text)

    return headings, links


def extract_note(
    path: str,
    text: str,
    mtime: float,
    *,
    collection: str = DEFAULT_COLLECTION,
    abs_path: Path | None = None,
) -> Note:
    """Build a ``Note`` from one file's raw text.

    *path* is the vault-relative key; *abs_path* feeds the identity hash and
    defaults to *path* resolved against the working directory.
    """
    meta, body = split_frontmatter(text)

    inline_tags = TAG_PATTERN.findall(body)
    tags = _frontmatter_tags(meta) + inline_tags

    headings, md_links = scan_headings_and_links(body)
    wikilinks = [target.strip() for target in WIKILINK_PATTERN.findall(body)]
    links = [link for link in md_links + wikilinks if link]

    stem = PurePosixPath(path).stem
    title = headings[0] if headings else (stem or "Untitled")

    return Note(
        doc_id=note_id(abs_path if abs_path is not None else Path(path).resolve()),
        path=path,
        collection=collection,
        title=title,
        tags=tags,
        headings=headings,
        links=links,
        frontmatter=meta,
        body=body,
        mtime=mtime,
    )
