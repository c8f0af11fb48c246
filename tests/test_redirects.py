"""
Tests for final-URL resolution.
"""

from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from redirects import RedirectResolver, find_meta_refresh
from transport import TransportError, TransportResponse
from utils.profiler import Profiler

HTML = {"Content-Type": "text/html; charset=utf-8"}


def refresh_page(target: str, content: str = "0;url={}") -> str:
    return f'<html><head><meta http-equiv="refresh" content="{content.format(target)}"></head></html>'


class TestFindMetaRefresh:
    """Test suite for meta refresh extraction."""

    def test_basic_refresh(self):
        assert find_meta_refresh(refresh_page("https://example.com/next")) == "https://example.com/next"

    def test_bytes_input(self):
        assert find_meta_refresh(refresh_page("https://x.test/").encode()) == "https://x.test/"

    def test_url_prefix_case_and_spacing(self):
        html = refresh_page("https://x.test/a", content="5; URL={}")
        assert find_meta_refresh(html) == "https://x.test/a"

    def test_quoted_target(self):
        html = "<meta http-equiv=\"refresh\" content=\"0; url='https://x.test/q'\">"
        assert find_meta_refresh(html) == "https://x.test/q"

    def test_first_refresh_element_wins(self):
        html = refresh_page("https://first.test/") + refresh_page("https://second.test/")
        assert find_meta_refresh(html) == "https://first.test/"

    def test_first_url_segment_wins(self):
        html = '<meta http-equiv="refresh" content="0;url=https://one.test/;url=https://two.test/">'
        assert find_meta_refresh(html) == "https://one.test/"

    def test_refresh_without_url_is_skipped(self):
        html = '<meta http-equiv="refresh" content="30">' + refresh_page("https://later.test/")
        assert find_meta_refresh(html) == "https://later.test/"

    def test_other_meta_ignored(self):
        html = '<meta name="description" content="url=https://nope.test/"><meta charset="utf-8">'
        assert find_meta_refresh(html) is None

    def test_refresh_without_content_ignored(self):
        assert find_meta_refresh('<meta http-equiv="refresh">') is None

    def test_malformed_markup_does_not_raise(self):
        broken = "<html><meta http-equiv=refresh content='0;url=https://m.test/'<<</"
        assert find_meta_refresh(broken) in (None, "https://m.test/")
        assert find_meta_refresh(b"\x00\xff\xfe<<<>>>") is None
        assert find_meta_refresh("") is None

    def test_parser_error_degrades_to_none(self):
        with patch("redirects.BeautifulSoup", side_effect=RuntimeError("parser exploded")):
            assert find_meta_refresh("<meta>") is None


@pytest.fixture
def resolver_for(config):
    def build(transport, profiler=None):
        return RedirectResolver(config, transport=transport, profiler=profiler)

    return build


@pytest.mark.asyncio
class TestRedirectResolver:
    """Test suite for RedirectResolver.final_url()."""

    async def test_header_then_meta_refresh_chain(self, fake_transport, resolver_for):
        """301 to b.test, meta refresh to c.test, c.test is final."""
        fake_transport.add("https://a.test/", status=301, headers={"Location": "https://b.test/"})
        fake_transport.add("https://b.test/", headers=HTML, body=refresh_page("https://c.test/"))
        fake_transport.add("https://c.test/", headers=HTML, body="<html><body>done</body></html>")

        result = await resolver_for(fake_transport).final_url("https://a.test/")

        assert result == "https://c.test/"
        assert [(m, u) for m, u, _ in fake_transport.calls] == [
            ("HEAD", "https://a.test/"),
            ("HEAD", "https://b.test/"),
            ("GET", "https://b.test/"),
            ("HEAD", "https://c.test/"),
            ("GET", "https://c.test/"),
        ]

    async def test_blocked_url_returned_unchanged(self, fake_transport, resolver_for):
        url = "https://evil.test/?utm_source=x"

        assert await resolver_for(fake_transport).final_url(url) == url
        assert fake_transport.calls == []

    async def test_redirect_blocked_url_returned_unchanged(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", status=302, headers={"Location": "https://noredirect.test/x"})

        result = await resolver_for(fake_transport).final_url("https://a.test/")

        assert result == "https://noredirect.test/x"
        assert fake_transport.urls == ["https://a.test/"]

    async def test_blocked_redirect_target_stops(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", status=301, headers={"Location": "https://evil.test/landing"})

        result = await resolver_for(fake_transport).final_url("https://a.test/")

        assert result == "https://evil.test/landing"
        assert fake_transport.urls == ["https://a.test/"]

    async def test_quoted_blocked_url_not_requested(self, fake_transport, resolver_for):
        fake_transport.add("https://evil.test/", headers=HTML, body="<p></p>")
        fake_transport.add("https://noredirect.test/", headers=HTML, body="<p></p>")
        resolver = resolver_for(fake_transport)

        assert await resolver.final_url("'https://evil.test/'") == "https://evil.test/"
        assert await resolver.final_url('"https://noredirect.test/"') == "https://noredirect.test/"
        assert fake_transport.calls == []

    async def test_depth_ceiling(self, fake_transport, resolver_for):
        """A server that always redirects stops at the 10th hop's target."""

        def always_redirect(url):
            n = int(url.rsplit("/", 1)[1])
            return TransportResponse(url=url, status=302, headers={"Location": [f"https://loop.test/{n + 1}"]})

        for n in range(20):
            fake_transport.route(f"https://loop.test/{n}", always_redirect)

        result = await resolver_for(fake_transport).final_url("https://loop.test/0")

        assert result == "https://loop.test/10"
        assert len(fake_transport.calls) == 10
        assert "https://loop.test/10" not in fake_transport.urls

    async def test_depth_argument_respected(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", status=301, headers={"Location": "https://b.test/"})

        assert await resolver_for(fake_transport).final_url("https://a.test/", depth=11) == "https://a.test/"
        assert fake_transport.calls == []

    async def test_header_redirect_preempts_body_scan(self, fake_transport, resolver_for):
        fake_transport.add(
            "https://a.test/",
            status=302,
            headers={"Location": "https://b.test/", **HTML},
            body=refresh_page("https://meta.test/"),
        )
        fake_transport.add("https://b.test/", headers=HTML, body="<html></html>")

        result = await resolver_for(fake_transport).final_url("https://a.test/")

        assert result == "https://b.test/"
        assert "https://meta.test/" not in fake_transport.urls
        assert ("GET", "https://a.test/") not in [(m, u) for m, u, _ in fake_transport.calls]

    async def test_meta_refresh_followed(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers=HTML, body=refresh_page("https://example.com/next"))
        fake_transport.add("https://example.com/next", headers=HTML, body="<p>hi</p>")

        result = await resolver_for(fake_transport).final_url("https://a.test/")

        assert result == "https://example.com/next"

    async def test_relative_location_resolved(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/old/page", status=301, headers={"Location": "/new"})
        fake_transport.add("https://a.test/new", headers=HTML, body="<p></p>")

        assert await resolver_for(fake_transport).final_url("https://a.test/old/page") == "https://a.test/new"

    async def test_relative_meta_refresh_resolved(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/dir/", headers=HTML, body=refresh_page("landing.html"))
        fake_transport.add("https://a.test/dir/landing.html", headers=HTML, body="<p></p>")

        result = await resolver_for(fake_transport).final_url("https://a.test/dir/")

        assert result == "https://a.test/dir/landing.html"

    async def test_other_redirect_statuses_not_followed(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", status=307, headers={"Location": "https://b.test/"})

        assert await resolver_for(fake_transport).final_url("https://a.test/") == "https://a.test/"
        assert "https://b.test/" not in fake_transport.urls

    async def test_redirect_without_location_scans_body(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", status=301, headers=HTML, body=refresh_page("https://m.test/"))
        fake_transport.add("https://m.test/", headers=HTML, body="<p></p>")

        assert await resolver_for(fake_transport).final_url("https://a.test/") == "https://m.test/"

    async def test_transport_failure_returns_url(self, fake_transport, resolver_for):
        fake_transport.fail("https://down.test/", TransportError("Connection error"))

        assert await resolver_for(fake_transport).final_url("https://down.test/") == "https://down.test/"

    async def test_failure_during_body_fetch_returns_url(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers=HTML, method="HEAD")
        fake_transport.fail("https://a.test/", TransportError("reset"), method="GET")

        assert await resolver_for(fake_transport).final_url("https://a.test/") == "https://a.test/"

    async def test_oversized_body_never_fetched(self, fake_transport, resolver_for):
        fake_transport.add(
            "https://big.test/",
            headers={"Content-Length": "2000000", **HTML},
            body=refresh_page("https://hidden.test/"),
        )

        result = await resolver_for(fake_transport).final_url("https://big.test/")

        assert result == "https://big.test/"
        assert fake_transport.bodies_served == []

    async def test_undeclared_oversized_body_returns_url(self, fake_transport, resolver_for):
        fake_transport.add("https://big.test/", headers=HTML, body=refresh_page("https://hidden.test/") + " " * 1_000_001)

        assert await resolver_for(fake_transport).final_url("https://big.test/") == "https://big.test/"

    async def test_non_html_not_scanned(self, fake_transport, resolver_for):
        fake_transport.add(
            "https://a.test/file.json",
            headers={"Content-Type": "application/json"},
            body=refresh_page("https://hidden.test/"),
        )

        result = await resolver_for(fake_transport).final_url("https://a.test/file.json")

        assert result == "https://a.test/file.json"
        assert fake_transport.bodies_served == []

    async def test_missing_content_type_is_scanned(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", body=refresh_page("https://b.test/"))
        fake_transport.add("https://b.test/", body="")

        assert await resolver_for(fake_transport).final_url("https://a.test/") == "https://b.test/"

    async def test_uppercase_html_content_type(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers={"Content-Type": "TEXT/HTML"}, body=refresh_page("https://b.test/"))
        fake_transport.add("https://b.test/", headers=HTML, body="<p></p>")

        assert await resolver_for(fake_transport).final_url("https://a.test/") == "https://b.test/"

    async def test_blank_body_returns_url(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers=HTML, body="   \n\t ")

        assert await resolver_for(fake_transport).final_url("https://a.test/") == "https://a.test/"

    async def test_tracking_params_stripped(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/p?id=1", headers=HTML, body="<p></p>")

        result = await resolver_for(fake_transport).final_url("https://a.test/p?utm_source=mail&id=1&fbclid=z")

        assert result == "https://a.test/p?id=1"
        assert fake_transport.urls[0] == "https://a.test/p?id=1"

    async def test_surrounding_quotes_trimmed(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers=HTML, body="<p></p>")

        assert await resolver_for(fake_transport).final_url("'https://a.test/'") == "https://a.test/"

    async def test_fetch_body_flag_skips_header_check(self, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers=HTML, body="<p></p>")

        await resolver_for(fake_transport).final_url("https://a.test/", fetch_body=True)

        assert fake_transport.methods == ["GET"]

    async def test_resolution_request_settings(self, config, fake_transport, resolver_for):
        fake_transport.add("https://a.test/", headers=HTML, body="<p></p>")

        await resolver_for(fake_transport).final_url("https://a.test/")

        (head_method, _, head_kwargs), (get_method, _, get_kwargs) = fake_transport.calls
        assert head_method == "HEAD" and get_method == "GET"
        for kwargs in (head_kwargs, get_kwargs):
            assert kwargs["headers"] == {"User-Agent": "TestAgent/1.0"}
            assert kwargs["allow_redirects"] is False
            assert kwargs["timeout"].connect == 10
            assert kwargs["timeout"].sock_read == 10
        assert head_kwargs["read_body"] is False

    async def test_local_link_logged_and_followed(self, fake_transport, resolver_for):
        fake_transport.add("http://10.0.0.5/", headers=HTML, body="<p></p>")

        with patch("redirects.logger") as mock_logger:
            result = await resolver_for(fake_transport).final_url("http://10.0.0.5/")

        assert result == "http://10.0.0.5/"
        mock_logger.info.assert_any_call("Local link", extra={"url": "http://10.0.0.5/"})

    async def test_profiler_spans_balanced(self, fake_transport, resolver_for):
        profiler = Profiler()
        fake_transport.add("https://a.test/", status=301, headers={"Location": "https://b.test/"})
        fake_transport.fail("https://b.test/", TransportError("down"))

        await resolver_for(fake_transport, profiler).final_url("https://a.test/")

        assert profiler.depth == 0
        assert profiler.counts["network"] == 2


@pytest.mark.asyncio
class TestRedirectResolverIntegration:
    """Resolution against a local aiohttp server."""

    async def test_resolves_through_server(self, config):
        async def start(request):
            raise web.HTTPMovedPermanently("/meta")

        async def meta(request):
            return web.Response(text=refresh_page("/final?utm_campaign=x"), content_type="text/html")

        async def final(request):
            return web.Response(text="<html><body>final</body></html>", content_type="text/html")

        app = web.Application()
        app.router.add_get("/start", start)
        app.router.add_get("/meta", meta)
        app.router.add_get("/final", final)

        server = TestServer(app)
        await server.start_server()
        try:
            resolver = RedirectResolver(config)

            result = await resolver.final_url(str(server.make_url("/start")))

            assert result == str(server.make_url("/final"))
        finally:
            await server.close()
