"""OpenDocument text (.odt) loading.

An ODT file is a zip archive; the body lives in ``content.xml``. Headings,
paragraphs and list items are walked in document order, honouring the
``text:s``/``text:tab``/``text:line-break`` whitespace elements.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from xml.etree import ElementTree

from sermonfinder.ingestion.base import failed, from_text
from sermonfinder.models import ExtractedContent
from sermonfinder.utils.text import collapse_blank_lines

TEXT_NS = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"

_P = f"{{{TEXT_NS}}}p"
_H = f"{{{TEXT_NS}}}h"
_SPACE = f"{{{TEXT_NS}}}s"
_TAB = f"{{{TEXT_NS}}}tab"
_BREAK = f"{{{TEXT_NS}}}line-break"
_OUTLINE = f"{{{TEXT_NS}}}outline-level"
_COUNT = f"{{{TEXT_NS}}}c"
_NOTE = f"{{{TEXT_NS}}}note"


def _int_attr(element: ElementTree.Element, name: str) -> int:
    try:
        return max(int(element.get(name, "1")), 1)
    except ValueError:
        return 1


def _inline_text(element: ElementTree.Element) -> str:
    parts = [element.text or ""]
    for child in element:
        if child.tag == _SPACE:
            parts.append(" " * _int_attr(child, _COUNT))
        elif child.tag == _TAB:
            parts.append("\t")
        elif child.tag == _BREAK:
            parts.append("\n")
        elif child.tag == _NOTE:
            # note bodies hold their own text:p, emitted as separate blocks
            pass
        else:
            parts.append(_inline_text(child))
        parts.append(child.tail or "")
    return "".join(parts)


def _blocks(root: ElementTree.Element) -> list[str]:
    blocks = []
    for element in root.iter():
        if element.tag == _H:
            text = _inline_text(element).strip()
            if text:
                level = _int_attr(element, _OUTLINE)
                blocks.append("#" * level + " " + text)
        elif element.tag == _P:
            text = _inline_text(element).strip()
            if text:
                blocks.append(text)
    return blocks


def extract_odt(path: Path) -> ExtractedContent:
    try:
        with zipfile.ZipFile(path) as archive:
            xml = archive.read("content.xml")
        root = ElementTree.fromstring(xml)
    except (OSError, KeyError, zipfile.BadZipFile, ElementTree.ParseError) as exc:
        return failed(path, exc)

    content = collapse_blank_lines("\n\n".join(_blocks(root)))
    return from_text(content, fallback_title=path.stem)
