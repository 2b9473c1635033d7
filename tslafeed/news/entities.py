"""HTML/XML entity decoding and markup stripping for raw feed text."""

import logging
import re
import warnings

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

logger = logging.getLogger(__name__)

# Feed snippets are often bare URLs or short strings; bs4 warns on those.
warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

_BLOCK_TAGS = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"<p\b[^>]*>", re.IGNORECASE), "\n"),
    (re.compile(r"</p\s*>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<li\b[^>]*>", re.IGNORECASE), "\n* "),
    (re.compile(r"</li\s*>", re.IGNORECASE), "\n"),
]
_ANY_TAG = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)


def strip_cdata(text: str) -> str:
    """Unwrap any ``<![CDATA[...]]>`` sections left in the text."""
    return _CDATA.sub(r"\1", text)


def _text_of(markup: str) -> str:
    return BeautifulSoup(markup, "html.parser").get_text()


def decode_entities(text):
    """Decode named and numeric entities and drop any tags.

    Never raises; returns a regex-stripped string if the parser chokes.
    """
    if not isinstance(text, str):
        return text
    if "&" not in text and "<" not in text:
        return text
    try:
        return _text_of(text)
    except Exception as e:
        logger.debug("[ENTITIES] Falling back to regex strip: %s", e)
        return _ANY_TAG.sub("", text)


def strip_html(html):
    """Convert HTML to readable plain text.

    Block-level tags become line breaks (``<li>`` becomes a ``* `` bullet),
    every other tag is removed and entities are decoded.
    """
    if not isinstance(html, str):
        return html
    text = html
    for pattern, replacement in _BLOCK_TAGS:
        text = pattern.sub(replacement, text)
    try:
        text = _text_of(text)
    except Exception as e:
        logger.debug("[ENTITIES] Falling back to regex strip: %s", e)
        text = _ANY_TAG.sub("", text)
    return _BLANK_LINES.sub("\n\n", text.strip())


def clean_text(raw: str) -> str:
    """Full cleanup used for descriptions: CDATA, block tags, entities."""
    if not raw:
        return ""
    return decode_entities(strip_html(strip_cdata(raw))).strip()
