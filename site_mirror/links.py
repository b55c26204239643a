import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlsplit

from .paths import PathMapper
from .urls import Site, can_fetch_url, normalize_url


class LinkRecords:
    """In-scope absolute URLs found in one document, in discovery order."""

    def __init__(self) -> None:
        self._seen = set()
        self.urls: List[str] = []

    def add(self, url: str) -> None:
        if url not in self._seen:
            self._seen.add(url)
            self.urls.append(url)

    def __len__(self) -> int:
        return len(self.urls)

    def __iter__(self):
        return iter(self.urls)


class LinkRewriter:
    """Resolve, scope-check, rewrite and record a single reference."""

    def __init__(self, site: Site, mapper: PathMapper):
        self.site = site
        self.mapper = mapper

    def resolve(self, value: Optional[str], base_url: str) -> Optional[Tuple[str, str]]:
        if not can_fetch_url(value):
            return None
        try:
            absu, frag = urldefrag(urljoin(base_url, value.strip()))
            if urlsplit(absu).scheme not in ("http", "https"):
                return None
            target = normalize_url(absu)
        except ValueError as e:
            logging.debug("unparseable reference %r in %s: %s", value, base_url, e)
            return None
        if not self.site.contains(target):
            return None
        return target, frag

    def rewrite(
        self, value: Optional[str], base_url: str, doc_url: str, found: LinkRecords
    ) -> Optional[str]:
        """Return the local reference for ``value``, or None to leave it as is."""
        resolved = self.resolve(value, base_url)
        if resolved is None:
            return None
        target, frag = resolved
        rel = self.mapper.relative_link(doc_url, target)
        if frag:
            rel = f"{rel}#{frag}"
        found.add(target)
        logging.debug("rewrite %s -> %s (in %s)", value, rel, doc_url)
        return rel


@dataclass
class RewriteResult:
    text: str
    links: List[str]
    encoding: str = "utf-8"
