"""
Unit tests for the website adapters (httpx fetcher, lxml meta reader).

The fetcher is exercised through httpx.MockTransport, so no network
access is needed.
"""

import httpx
import pytest

from src.adapters.http.fetcher import USER_AGENT, HttpxDocumentFetcher
from src.adapters.http.meta import LxmlMetaTagReader
from src.domain.exceptions import FetchError
from src.domain.ports import DocumentFetcher, MetaTagReader

META_NAME = "ca-officials-verification"

PAGE = b"""<!DOCTYPE html>
<html>
  <head>
    <title>Senate District 15</title>
    <meta name="ca-officials-verification" content="A1B2C3D4">
    <meta name="description" content="Official site">
  </head>
  <body><p>Welcome</p></body>
</html>
"""


def fetcher_for(handler, **kwargs) -> HttpxDocumentFetcher:
    return HttpxDocumentFetcher(transport=httpx.MockTransport(handler), **kwargs)


class TestHttpxDocumentFetcher:
    """Tests for HttpxDocumentFetcher."""

    def test_implements_protocol(self) -> None:
        fetcher: DocumentFetcher = HttpxDocumentFetcher()
        assert callable(fetcher.fetch_document)

    def test_returns_body(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=PAGE)

        body = fetcher_for(handler).fetch_document("https://senate.ca.gov/sd15", 5.0)

        assert body == PAGE
        assert seen[0].headers["User-Agent"] == USER_AGENT
        assert seen[0].method == "GET"

    def test_refuses_plain_http(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not be called")

        with pytest.raises(FetchError):
            fetcher_for(handler).fetch_document("http://senate.ca.gov", 5.0)

    def test_follows_https_redirect(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://senate.ca.gov/new"})
            return httpx.Response(200, content=PAGE)

        body = fetcher_for(handler).fetch_document("https://senate.ca.gov/old", 5.0)

        assert body == PAGE

    def test_redirect_to_http_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.scheme == "https":
                return httpx.Response(302, headers={"Location": "http://senate.ca.gov/"})
            return httpx.Response(200, content=PAGE)

        with pytest.raises(FetchError, match="non-https"):
            fetcher_for(handler).fetch_document("https://senate.ca.gov", 5.0)

    @pytest.mark.parametrize("status", [403, 404, 500, 503])
    def test_http_error_status_is_fetch_error(self, status: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status)

        with pytest.raises(FetchError, match=str(status)):
            fetcher_for(handler).fetch_document("https://senate.ca.gov", 5.0)

    def test_timeout_is_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchError, match="Timed out"):
            fetcher_for(handler).fetch_document("https://senate.ca.gov", 0.1)

    def test_connection_error_is_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        with pytest.raises(FetchError, match="Could not reach"):
            fetcher_for(handler).fetch_document("https://senate.ca.gov", 5.0)

    def test_oversized_body_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 2048)

        with pytest.raises(FetchError, match="exceeds"):
            fetcher_for(handler, max_bytes=1024).fetch_document("https://senate.ca.gov", 5.0)


class TestLxmlMetaTagReader:
    """Tests for LxmlMetaTagReader."""

    def test_implements_protocol(self) -> None:
        reader: MetaTagReader = LxmlMetaTagReader()
        assert callable(reader.read_meta)

    def test_reads_named_meta_from_head(self) -> None:
        assert LxmlMetaTagReader().read_meta(PAGE, META_NAME) == ["A1B2C3D4"]

    def test_other_names_are_ignored(self) -> None:
        assert LxmlMetaTagReader().read_meta(PAGE, "description") == ["Official site"]
        assert LxmlMetaTagReader().read_meta(PAGE, "site-verification") == []

    def test_multiple_tags_are_all_returned(self) -> None:
        page = (
            b"<html><head>"
            b'<meta name="ca-officials-verification" content="OLD00000">'
            b'<meta name="ca-officials-verification" content="A1B2C3D4">'
            b"</head><body></body></html>"
        )
        assert LxmlMetaTagReader().read_meta(page, META_NAME) == ["OLD00000", "A1B2C3D4"]

    def test_meta_in_body_is_ignored(self) -> None:
        page = (
            b"<html><head><title>t</title></head><body>"
            b'<div><meta name="ca-officials-verification" content="A1B2C3D4"></div>'
            b"</body></html>"
        )
        assert LxmlMetaTagReader().read_meta(page, META_NAME) == []

    def test_name_is_not_injectable(self) -> None:
        """The name is bound as an XPath variable, not interpolated."""
        assert LxmlMetaTagReader().read_meta(PAGE, "x' or '1'='1") == []

    @pytest.mark.parametrize("document", [b"", b"   \n  "])
    def test_empty_document_has_no_tags(self, document: bytes) -> None:
        assert LxmlMetaTagReader().read_meta(document, META_NAME) == []
