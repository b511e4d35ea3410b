"""
Meta tag reader adapter - Implements MetaTagReader protocol with lxml.

Only <meta> elements inside <head> count. A tag placed in the page body
does not prove control of the site's template and is ignored.
"""

import logging

from lxml import etree, html

logger = logging.getLogger(__name__)

_HEAD_META = etree.XPath("//head/meta[@name = $name]/@content")


class LxmlMetaTagReader:
    """
    Implements MetaTagReader protocol via lxml.html.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def read_meta(self, document: bytes, name: str) -> list[str]:
        if not document or not document.strip():
            return []
        try:
            tree = html.document_fromstring(document)
        except (etree.ParserError, ValueError) as exc:
            logger.info("Unparseable HTML document: %s", exc)
            return []
        return [str(value) for value in _HEAD_META(tree, name=name)]
