import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Iterator, List, Optional, Union

import requests

from .css_rewriter import CssRewriter
from .fetcher import FetchFailure, Fetcher, RemoteResource, build_session
from .frontier import Frontier
from .html_rewriter import HtmlRewriter
from .links import LinkRewriter
from .paths import PathMapper
from .settings import Settings
from .urls import Site
from .writer import ContentWriter

HTML = "html"
CSS = "css"
RAW = "raw"

HTML_TYPES = {"text/html", "application/xhtml+xml"}
CSS_TYPES = {"text/css"}
# types servers send when they do not know better; the file name decides then
GENERIC_TYPES = {"application/octet-stream", "binary/octet-stream", "text/plain"}
HTML_EXTS = {".html", ".htm"}
CSS_EXTS = {".css"}


def classify(mime_type: Optional[str], dest_path: str) -> str:
    if mime_type in HTML_TYPES:
        return HTML
    if mime_type in CSS_TYPES:
        return CSS
    if mime_type and mime_type not in GENERIC_TYPES:
        return RAW
    ext = posixpath.splitext(dest_path)[1].lower()
    if ext in HTML_EXTS:
        return HTML
    if ext in CSS_EXTS:
        return CSS
    return RAW


@dataclass
class CrawlStats:
    fetched: int = 0
    written: int = 0
    skipped: int = 0
    failed: int = 0
    retried: int = 0
    abandoned: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def incr(self, name: str, n: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + n)


class SiteMirror:
    """Mirrors one site into ``<output_root>/<site dir name>/``."""

    def __init__(
        self,
        root_url: str,
        output_root: Union[str, Path] = "output",
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or Settings()
        self.site = Site(root_url)
        self.mapper = PathMapper(self.site)
        self.output_root = Path(output_root)
        self.session = session if session is not None else build_session(self.settings)
        self.fetcher = Fetcher(self.session, self.settings)
        links = LinkRewriter(self.site, self.mapper)
        self.css = CssRewriter(links)
        self.html = HtmlRewriter(links, self.css)
        self.writer = ContentWriter(self.site_root, self.mapper)
        self.frontier = Frontier(self.site, self.settings.max_retries)
        self.stats = CrawlStats()

    @property
    def site_root(self) -> Path:
        return self.output_root / self.mapper.site_dir_name

    def run(self) -> CrawlStats:
        self.site_root.mkdir(parents=True, exist_ok=True)
        self.frontier.seed()
        logging.info("mirroring %s into %s", self.site.root, self.site_root)
        workers = max(1, self.settings.workers)
        try:
            if workers == 1:
                self._work()
            else:
                with ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="mirror"
                ) as pool:
                    futures = [pool.submit(self._work) for _ in range(workers)]
                    try:
                        for fut in as_completed(futures):
                            fut.result()
                    except BaseException:
                        # workers must stop before the pool joins them
                        self.stop()
                        raise
        except KeyboardInterrupt:
            logging.warning("Interrupted. %d URLs left in the queue.", len(self.frontier))
            self.stop()
            raise
        if self.frontier.stopped:
            logging.warning("stopped with %d URLs pending", len(self.frontier))
        return self.stats

    def stop(self) -> None:
        self.frontier.stop()

    def _work(self) -> None:
        while True:
            url = self.frontier.dequeue(block=True)
            if url is None:
                return
            self.process(url)

    def process(self, url: str) -> None:
        """Fetch, rewrite and store one dequeued URL, then settle it with the frontier."""
        logging.info("GET %s", url)
        discovered: List[str] = []
        try:
            result = self.fetcher.fetch(url, store=self.store_raw)
            if isinstance(result, FetchFailure):
                self._handle_failure(result)
                return
            self.stats.incr("fetched")
            if result.saved_to is not None:
                logging.info("saved %s -> %s (%s, 0 links)", url, result.saved_to, RAW)
            else:
                discovered = self.save(result)
            self.stats.incr("written")
        except Exception as e:
            logging.warning("error processing %s: %s", url, e)
            logging.debug("traceback for %s", url, exc_info=True)
            self.stats.incr("failed")
        for link in discovered:
            self.frontier.enqueue(link)
        self.frontier.complete(url)

    def _handle_failure(self, failure: FetchFailure) -> None:
        if not failure.retryable:
            logging.warning("skipped %s: %s", failure.url, failure.reason)
            self.stats.incr("skipped")
            self.frontier.complete(failure.url)
            return
        logging.warning("error fetching %s: %s", failure.url, failure.reason)
        if self.frontier.record_failure(failure.url):
            self.stats.incr("retried")
        else:
            self.stats.incr("abandoned")

    def store_raw(
        self,
        url: str,
        mime_type: Optional[str],
        chunks: Iterator[bytes],
        modified: Optional[datetime],
    ) -> Optional[Path]:
        """Stream a raw body to its file; HTML and CSS are left to ``save``."""
        if classify(mime_type, self.mapper.map(url)) != RAW:
            return None
        return self.writer.write_stream(url, chunks, modified)

    def save(self, resource: RemoteResource) -> List[str]:
        """Write one fetched resource and return the in-scope URLs it references."""
        url = resource.url
        kind = classify(resource.mime_type, self.mapper.map(url))
        if kind == HTML:
            hint = resource.encoding if resource.charset_declared else None
            res = self.html.rewrite(resource.body, url, hint)
            path = self.writer.write_text(url, res.text, res.encoding, resource.last_modified)
            links = res.links
        elif kind == CSS:
            res = self.css.rewrite(resource.body, url, resource.encoding)
            path = self.writer.write_text(url, res.text, res.encoding, resource.last_modified)
            links = res.links
        else:
            path = self.writer.write_bytes(url, resource.body, resource.last_modified)
            links = []
        logging.info("saved %s -> %s (%s, %d links)", url, path, kind, len(links))
        return links
