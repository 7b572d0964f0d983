"""
Tests for the webpilot.environment.network_log module.

This module tests:
- Recording Playwright network events into NetworkLogEntry objects
- Filter semantics of NetworkLogFilter
- Argument parsing helpers and filename helpers
- Lazy body retrieval
"""

from types import SimpleNamespace

import pytest

from webpilot.agents.exceptions import ToolArgumentError, ToolExecutionError
from webpilot.environment.network_log import (
    NetworkEventLog,
    NetworkLogEntry,
    NetworkLogFilter,
    NetworkResponseInfo,
    ensure_unique_filename,
    extension_for_mime,
    parse_resource_types,
    parse_status_codes,
    sanitize_filename,
    split_csv,
    suggest_filename,
)


def _request(url="https://cdn.example.com/app.js", method="GET", resource_type="script"):
    return SimpleNamespace(url=url, method=method, resource_type=resource_type, headers={"accept": "*/*"}, failure=None)


def _response(request, status=200, content_type="application/javascript; charset=utf-8", body=b"console.log(1)"):
    async def read_body():
        return body

    return SimpleNamespace(
        request=request,
        url=request.url,
        status=status,
        status_text="OK",
        headers={"Content-Type": content_type},
        body=read_body,
    )


def _entry(request_id, url, method="GET", resource_type="document", status=None, mime=""):
    response = NetworkResponseInfo(status=status, mime_type=mime) if status is not None else None
    return NetworkLogEntry(request_id=request_id, url=url, method=method, resource_type=resource_type, response=response)


# =============================================================================
# Event Recording Tests
# =============================================================================

class TestNetworkEventLog:
    """Tests for NetworkEventLog event handling."""

    def test_attach_subscribes_to_page_events(self):
        page = SimpleNamespace(handlers={})
        page.on = lambda event, handler: page.handlers.setdefault(event, handler)
        log = NetworkEventLog()

        log.attach(page)

        assert set(page.handlers) == {"request", "response", "requestfinished", "requestfailed"}

    def test_request_response_finished(self):
        log = NetworkEventLog()
        request = _request()

        log.record_request(request)
        log.record_response(_response(request))
        log.record_finished(request)

        entries = log.entries()
        assert len(entries) == 1
        summary = entries[0].to_summary()
        assert summary["request_id"] == "req-1"
        assert summary["url"] == "https://cdn.example.com/app.js"
        assert summary["status"] == 200
        assert summary["mime_type"] == "application/javascript"
        assert summary["finished"] is True
        assert summary["has_body"] is False

    def test_ids_follow_arrival_order(self):
        log = NetworkEventLog()
        first, second = _request("https://a.test/1"), _request("https://a.test/2")

        log.record_request(first)
        log.record_request(second)
        log.record_response(_response(first))

        assert [e.request_id for e in log.entries()] == ["req-1", "req-2"]
        assert log.entry_by_id("req-1").response.status == 200

    def test_failure_recorded(self):
        log = NetworkEventLog()
        request = _request()
        request.failure = "net::ERR_ABORTED"

        log.record_request(request)
        log.record_failure(request)

        assert log.entries()[0].to_summary()["error"] == "net::ERR_ABORTED"

    def test_disabled_log_ignores_events(self):
        log = NetworkEventLog(enabled=False)

        log.record_request(_request())

        assert log.entries() == []

    def test_set_enabled_reports_change(self):
        log = NetworkEventLog()

        assert log.set_enabled(True) is False
        assert log.set_enabled(False) is True
        assert log.enabled is False

    def test_clear(self):
        log = NetworkEventLog()
        log.record_request(_request())
        log.clear()

        assert log.entries() == []


class TestFetchBody:
    """Tests for lazy body retrieval."""

    @pytest.mark.asyncio
    async def test_fetches_and_caches(self):
        log = NetworkEventLog()
        request = _request()
        log.record_request(request)
        log.record_response(_response(request, body=b"payload"))

        assert await log.fetch_body("req-1") == b"payload"
        assert log.entry_by_id("req-1").to_summary()["has_body"] is True

    @pytest.mark.asyncio
    async def test_unknown_id(self):
        with pytest.raises(ToolArgumentError, match="request id not found: req-9"):
            await NetworkEventLog().fetch_body("req-9")

    @pytest.mark.asyncio
    async def test_no_response(self):
        log = NetworkEventLog()
        log.record_request(_request())

        with pytest.raises(ToolExecutionError):
            await log.fetch_body("req-1")

    @pytest.mark.asyncio
    async def test_body_error_is_wrapped(self):
        log = NetworkEventLog()
        request = _request()
        response = _response(request)

        async def broken():
            raise RuntimeError("Response body is unavailable for redirect responses")

        response.body = broken
        log.record_request(request)
        log.record_response(response)

        with pytest.raises(ToolExecutionError, match="redirect"):
            await log.fetch_body("req-1")


# =============================================================================
# Filter Tests
# =============================================================================

class TestNetworkLogFilter:
    """Tests for NetworkLogFilter.matches."""

    def test_empty_filter_matches_everything(self):
        log = NetworkEventLog()
        log.add_entry(_entry("a", "https://x.test/"))
        log.add_entry(_entry("b", "https://y.test/"))

        assert len(log.filter_entries(NetworkLogFilter())) == 2

    def test_mime_requires_response(self):
        flt = NetworkLogFilter(mime_substrings=["json"])

        assert flt.matches(_entry("a", "https://x.test/api", status=200, mime="application/json"))
        assert not flt.matches(_entry("b", "https://x.test/api"))

    def test_status_codes(self):
        flt = NetworkLogFilter(status_codes=[404])

        assert flt.matches(_entry("a", "https://x.test/", status=404))
        assert not flt.matches(_entry("b", "https://x.test/", status=200))
        assert not flt.matches(_entry("c", "https://x.test/"))

    def test_suffix_matches_basename(self):
        flt = NetworkLogFilter(suffixes=[".mp4"])

        assert flt.matches(_entry("a", "https://media.test/v/clip.mp4?token=1"))
        assert not flt.matches(_entry("b", "https://media.test/clip.mp4/page"))

    def test_contains_requires_all_substrings(self):
        flt = NetworkLogFilter(text_contains=["api", "v2"])

        assert flt.matches(_entry("a", "https://x.test/api/v2/users"))
        assert not flt.matches(_entry("b", "https://x.test/api/v1/users"))

    def test_domain_and_method(self):
        flt = NetworkLogFilter(domains=["example.com"], methods=["post"])

        assert flt.matches(_entry("a", "https://www.example.com/login", method="POST"))
        assert not flt.matches(_entry("b", "https://www.example.com/login", method="GET"))
        assert not flt.matches(_entry("c", "https://other.org/example.com", method="POST"))

    def test_resource_types(self):
        flt = NetworkLogFilter(resource_types=["image"])

        assert flt.matches(_entry("a", "https://x.test/logo.png", resource_type="image"))
        assert not flt.matches(_entry("b", "https://x.test/", resource_type="document"))


# =============================================================================
# Helper Tests
# =============================================================================

class TestArgumentHelpers:
    """Tests for CSV, status and resource type parsing."""

    def test_split_csv(self):
        assert split_csv(" JSON, ,text/html ") == ["json", "text/html"]
        assert split_csv("") == []
        assert split_csv(None) == []

    def test_parse_status_codes(self):
        assert parse_status_codes("200, 404") == [200, 404]

    def test_parse_status_codes_invalid(self):
        with pytest.raises(ToolArgumentError, match="invalid status code: ok"):
            parse_status_codes("200,ok")

    def test_parse_resource_types_aliases(self):
        assert parse_resource_types(["style", "Image", " "]) == ["stylesheet", "image"]

    def test_parse_resource_types_unknown(self):
        with pytest.raises(ToolArgumentError, match="unknown resource type: video"):
            parse_resource_types(["video"])


class TestFilenameHelpers:
    """Tests for filename derivation."""

    @pytest.mark.parametrize(
        "mime,ext",
        [
            ("application/json", "json"),
            ("text/html; charset=utf-8", "html"),
            ("image/jpeg", "jpg"),
            ("audio/mpeg", "mp3"),
            ("text/plain", "txt"),
            ("application/octet-stream", ""),
            ("", ""),
        ],
    )
    def test_extension_for_mime(self, mime, ext):
        assert extension_for_mime(mime) == ext

    def test_sanitize_filename(self):
        assert sanitize_filename('a:b*c?.txt') == "a_b_c_.txt"
        assert sanitize_filename("  ") == "resource"

    def test_suggest_from_url(self):
        entry = _entry("req-1", "https://x.test/assets/logo.png?v=3")

        assert suggest_filename(entry) == "logo.png"

    def test_suggest_adds_extension_from_mime(self):
        entry = _entry("req-2", "https://x.test/api/users", status=200, mime="application/json")

        assert suggest_filename(entry) == "users.json"

    def test_suggest_falls_back_to_method_and_id(self):
        entry = _entry("req-3", "https://x.test/", method="POST")

        assert suggest_filename(entry) == "post_req-3"

    def test_suggest_without_entry(self):
        assert suggest_filename(None, 4) == "resource_4"

    def test_ensure_unique_filename(self, tmp_path):
        (tmp_path / "data.json").write_text("{}")
        used = {}

        assert ensure_unique_filename(tmp_path, "data.json", used) == "data_1.json"
        assert ensure_unique_filename(tmp_path, "fresh.bin", used) == "fresh.bin"
