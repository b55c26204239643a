import codecs
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, Tuple, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .settings import Settings

DEFAULT_ENCODING = "utf-8"

TRANSPORT = "transport"
HTTP_STATUS = "http_status"
TOO_LARGE = "too_large"


@dataclass
class RemoteResource:
    url: str
    mime_type: Optional[str]
    encoding: str
    body: Optional[bytes]
    last_modified: Optional[datetime] = None
    status: int = 200
    # True when the encoding came from a charset parameter rather than the default
    charset_declared: bool = False
    # set when the body went straight to disk and `body` is None
    saved_to: Optional[Path] = None


@dataclass
class FetchFailure:
    url: str
    kind: str
    reason: str = ""
    status: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.kind == TRANSPORT


FetchResult = Union[RemoteResource, FetchFailure]


def build_session(settings: Settings) -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=settings.transport_retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    pool = max(10, settings.workers)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool, pool_maxsize=pool)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(settings.headers)
    return s


def charset_of(value: Optional[str]) -> Optional[str]:
    """Codec name of a recognized charset parameter, else None."""
    if not value:
        return None
    for param in value.split(";")[1:]:
        name, sep, charset = param.partition("=")
        if not sep or name.strip().lower() != "charset":
            continue
        charset = charset.strip().strip("\"'")
        try:
            return codecs.lookup(charset).name
        except LookupError:
            logging.debug("unknown charset %r, using %s", charset, DEFAULT_ENCODING)
            return None
    return None


def parse_content_type(value: Optional[str]) -> Tuple[Optional[str], str]:
    """Split a Content-Type header into (mime type, encoding)."""
    if not value:
        return None, DEFAULT_ENCODING
    mime = value.split(";")[0].strip().lower() or None
    if mime is not None and "/" not in mime:
        mime = None
    return mime, charset_of(value) or DEFAULT_ENCODING


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if not dt.tzinfo:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def last_modified_from(headers: Mapping[str, str]) -> Optional[datetime]:
    return parse_http_date(headers.get("Date")) or parse_http_date(
        headers.get("Last-Modified")
    )


class BodyTooLarge(Exception):
    pass


# store(url, mime_type, chunks, last_modified) -> path written, or None to decline
BodyStore = Callable[[str, Optional[str], Iterator[bytes], Optional[datetime]], Optional[Path]]


class Fetcher:
    """One GET per call. Keeps no state between calls besides the session."""

    def __init__(self, session: requests.Session, settings: Settings):
        self.session = session
        self.settings = settings

    def iter_body(self, resp: requests.Response) -> Iterator[bytes]:
        limit = self.settings.max_bytes
        written = 0
        for chunk in resp.iter_content(chunk_size=self.settings.chunk_size):
            if not chunk:
                continue
            written += len(chunk)
            if written > limit:
                raise BodyTooLarge(f"over {limit} bytes")
            yield chunk

    def fetch(self, url: str, store: Optional[BodyStore] = None) -> FetchResult:
        """GET ``url``. With ``store``, the body may be streamed to disk instead of
        being read into memory; ``saved_to`` is set on the result when it was."""
        s = self.settings
        status = None
        try:
            with self.session.get(url, timeout=s.timeout, stream=True) as resp:
                status = resp.status_code
                if not 200 <= status < 300:
                    return FetchFailure(url, HTTP_STATUS, f"HTTP {status}", status)
                cl = resp.headers.get("Content-Length")
                if cl:
                    try:
                        if int(cl) > s.max_bytes:
                            return FetchFailure(url, TOO_LARGE, f"{cl} bytes", status)
                    except ValueError:
                        pass
                content_type = resp.headers.get("Content-Type")
                mime, encoding = parse_content_type(content_type)
                modified = last_modified_from(resp.headers)
                chunks = self.iter_body(resp)
                saved_to = store(url, mime, chunks, modified) if store else None
                return RemoteResource(
                    url=url,
                    mime_type=mime,
                    encoding=encoding,
                    body=None if saved_to is not None else b"".join(chunks),
                    last_modified=modified,
                    status=status,
                    charset_declared=charset_of(content_type) is not None,
                    saved_to=saved_to,
                )
        except BodyTooLarge as e:
            return FetchFailure(url, TOO_LARGE, str(e), status)
        except requests.RequestException as e:
            return FetchFailure(url, TRANSPORT, str(e) or e.__class__.__name__)
