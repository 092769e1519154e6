"""
Tag-scoped string extraction over raw UPnP XML and SOAP payloads.
No XML parser is involved: a field is whatever sits between the first
<tag> and the next </tag>.
"""
from __future__ import annotations

import re
from xml.sax.saxutils import escape

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def extract_xml_tag(xml: str, tag: str) -> str | None:
    """Return the text between the first <tag> and the following </tag>, or None."""
    return find_xml_tag_after(xml, tag, 0)


def find_xml_tag_after(xml: str, tag: str, offset: int) -> str | None:
    """Like extract_xml_tag, but only looks at xml[offset:]."""
    start_tag = f"<{tag}>"
    end_tag = f"</{tag}>"
    start = xml.find(start_tag, offset)
    if start == -1:
        return None
    start += len(start_tag)
    end = xml.find(end_tag, start)
    if end == -1:
        return None
    return xml[start:end]


def has_xml_element(xml: str, local_name: str) -> bool:
    """True if an element with this local name opens anywhere in xml (any prefix)."""
    pattern = rf"<(?:[\w.-]+:)?{re.escape(local_name)}[\s/>]"
    return re.search(pattern, xml) is not None


def escape_xml(text: str) -> str:
    """Escape all five XML special characters (& < > " ')."""
    return escape(text, _XML_ENTITIES)
