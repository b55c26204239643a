import codecs
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import requests

from fakes import DATE, FakePage, FakeResponse, FakeSession
from site_mirror.fetcher import (
    HTTP_STATUS,
    TOO_LARGE,
    TRANSPORT,
    FetchFailure,
    Fetcher,
    RemoteResource,
    build_session,
    parse_content_type,
    parse_http_date,
)
from site_mirror.settings import Settings

URL = "http://example.com/a.html"


def drain(url, mime_type, chunks, modified):
    b"".join(chunks)
    return Path("saved")


class TestParseContentType(unittest.TestCase):
    def test_mime_and_charset(self):
        mime, enc = parse_content_type("text/html; charset=ISO-8859-1")
        self.assertEqual(mime, "text/html")
        self.assertEqual(enc, codecs.lookup("latin-1").name)

    def test_quoted_charset_and_case(self):
        self.assertEqual(parse_content_type('Text/HTML; Charset="UTF-8"'), ("text/html", "utf-8"))

    def test_charset_not_first_parameter(self):
        mime, enc = parse_content_type("text/css; foo=bar; charset=windows-1251")
        self.assertEqual(mime, "text/css")
        self.assertEqual(enc, codecs.lookup("cp1251").name)

    def test_defaults(self):
        self.assertEqual(parse_content_type("text/css"), ("text/css", "utf-8"))
        self.assertEqual(parse_content_type(None), (None, "utf-8"))
        self.assertEqual(parse_content_type(""), (None, "utf-8"))
        self.assertEqual(parse_content_type(";"), (None, "utf-8"))
        self.assertEqual(parse_content_type("garbage"), (None, "utf-8"))

    def test_unknown_charset_falls_back(self):
        self.assertEqual(parse_content_type("text/html; charset=no-such-codec"), ("text/html", "utf-8"))


class TestParseHttpDate(unittest.TestCase):
    def test_rfc1123(self):
        self.assertEqual(parse_http_date(DATE), datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc))

    def test_invalid(self):
        self.assertIsNone(parse_http_date(None))
        self.assertIsNone(parse_http_date("not a date"))


class TestBuildSession(unittest.TestCase):
    def test_headers_and_no_transport_retries(self):
        s = build_session(Settings(workers=32))
        self.assertIn("User-Agent", s.headers)
        adapter = s.get_adapter("http://example.com/")
        self.assertEqual(adapter.max_retries.total, 0)
        self.assertEqual(adapter._pool_maxsize, 32)


class TestFetcher(unittest.TestCase):
    def fetch(self, route, settings=None):
        session = FakeSession({URL: route})
        return Fetcher(session, settings or Settings()).fetch(URL)

    def test_success(self):
        res = self.fetch(FakePage("<p>hi</p>", headers={"Date": DATE}))
        self.assertIsInstance(res, RemoteResource)
        self.assertEqual(res.body, b"<p>hi</p>")
        self.assertEqual(res.mime_type, "text/html")
        self.assertEqual(res.encoding, "utf-8")
        self.assertTrue(res.charset_declared)
        self.assertEqual(res.last_modified, datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc))

    def test_last_modified_fallback(self):
        res = self.fetch(FakePage("x", headers={"Last-Modified": DATE}))
        self.assertEqual(res.last_modified.year, 2015)
        res = self.fetch(FakePage("x"))
        self.assertIsNone(res.last_modified)

    def test_missing_content_type(self):
        res = self.fetch(FakePage(b"\x89PNG", content_type=None))
        self.assertIsNone(res.mime_type)
        self.assertEqual(res.encoding, "utf-8")
        self.assertFalse(res.charset_declared)

    def test_non_success_status_is_not_retryable(self):
        res = self.fetch(FakePage("gone", status=404))
        self.assertIsInstance(res, FetchFailure)
        self.assertEqual(res.kind, HTTP_STATUS)
        self.assertEqual(res.status, 404)
        self.assertFalse(res.retryable)
        res = self.fetch(FakePage("oops", status=500))
        self.assertEqual(res.kind, HTTP_STATUS)

    def test_transport_error_is_retryable(self):
        res = self.fetch(requests.ConnectionError("refused"))
        self.assertIsInstance(res, FetchFailure)
        self.assertEqual(res.kind, TRANSPORT)
        self.assertEqual(res.url, URL)
        self.assertTrue(res.retryable)
        res = self.fetch(requests.Timeout())
        self.assertEqual(res.kind, TRANSPORT)

    def test_too_large(self):
        s = Settings(max_bytes=1024, chunk_size=256)
        res = self.fetch(FakePage(b"x" * 2048), s)
        self.assertEqual(res.kind, TOO_LARGE)
        res = self.fetch(FakePage(b"x", headers={"Content-Length": "999999"}), s)
        self.assertEqual(res.kind, TOO_LARGE)
        self.assertFalse(res.retryable)

    def test_single_streamed_get_with_timeout(self):
        session = MagicMock()
        session.get.return_value = FakeResponse(URL, 200, b"ok", {"Content-Type": "text/plain"})
        Fetcher(session, Settings(timeout=3.5)).fetch(URL)
        session.get.assert_called_once_with(URL, timeout=3.5, stream=True)


class TestFetcherStore(unittest.TestCase):
    PNG = b"\x89PNG" + bytes(range(200))

    def fetch(self, route, store, settings=None):
        session = FakeSession({URL: route})
        return Fetcher(session, settings or Settings(chunk_size=64)).fetch(URL, store=store)

    def test_store_receives_streamed_body(self):
        seen = {}

        def store(url, mime_type, chunks, modified):
            seen["head"] = (url, mime_type, modified)
            seen["chunks"] = list(chunks)
            return Path("saved.png")

        res = self.fetch(FakePage(self.PNG, "image/png", headers={"Date": DATE}), store)
        self.assertIsNone(res.body)
        self.assertEqual(res.saved_to, Path("saved.png"))
        self.assertEqual(seen["head"], (URL, "image/png", parse_http_date(DATE)))
        self.assertGreater(len(seen["chunks"]), 1)
        self.assertEqual(b"".join(seen["chunks"]), self.PNG)

    def test_declined_store_buffers_body(self):
        res = self.fetch(FakePage("<p>hi</p>"), lambda *args: None)
        self.assertEqual(res.body, b"<p>hi</p>")
        self.assertIsNone(res.saved_to)

    def test_streamed_body_over_limit(self):
        consumed = []

        def store(url, mime_type, chunks, modified):
            for chunk in chunks:
                consumed.append(chunk)
            return Path("never")

        res = self.fetch(FakePage(b"x" * 2048, "image/png"), store, Settings(max_bytes=1024, chunk_size=256))
        self.assertIsInstance(res, FetchFailure)
        self.assertEqual(res.kind, TOO_LARGE)
        self.assertEqual(res.status, 200)
        self.assertEqual(sum(map(len, consumed)), 1024)

    def test_connection_drop_mid_body_is_retryable(self):
        drop = requests.exceptions.ChunkedEncodingError("connection reset")
        res = self.fetch(FakePage(self.PNG, "image/png", error=drop), drain)
        self.assertEqual(res.kind, TRANSPORT)
        self.assertTrue(res.retryable)
        res = self.fetch(FakePage(self.PNG, "image/png", error=drop), None)
        self.assertEqual(res.kind, TRANSPORT)


if __name__ == "__main__":
    unittest.main()
