import posixpath
import re
from typing import List
from urllib.parse import quote, unquote, urlsplit

from .urls import Site, normalize_url

RESERVED_CHARS_RE = re.compile(r'[?&|:/;*"\\#<>]')
INDEX_FILE = "index.html"
MAX_SEGMENT_LEN = 200
# characters left unescaped in rewritten references (quotes are always escaped)
LINK_SAFE_CHARS = "/=,@!$+"


def sanitize_filename(name: str) -> str:
    name = RESERVED_CHARS_RE.sub("_", name)
    name = name or "file"
    if name.startswith("."):
        name = "_" + name[1:]
    return name[:MAX_SEGMENT_LEN]


def _segments(path: str) -> List[str]:
    return [unquote(seg) for seg in path.split("/") if seg]


class PathMapper:
    """Maps URLs of one site to destination paths relative to the site directory.

    The mapping only looks at the URL, never at the response, so the same URL
    always lands on the same file and every document can compute where the
    resources it references will live before they are fetched.
    """

    def __init__(self, site: Site):
        self.site = site
        self._root_segs = [sanitize_filename(s) for s in _segments(site.path)]

    @property
    def site_dir_name(self) -> str:
        return sanitize_filename(self.site.root)

    def map(self, url: str) -> str:
        p = urlsplit(normalize_url(url))
        segs = _segments(p.path)
        if p.path.endswith("/") or not segs or not posixpath.splitext(segs[-1])[1]:
            segs.append(INDEX_FILE)

        stem, ext = posixpath.splitext(segs[-1])
        if p.query:
            stem = f"{stem}?{p.query}"
        filename = sanitize_filename(stem) + RESERVED_CHARS_RE.sub("_", ext)
        dirs = [sanitize_filename(s) for s in segs[:-1]]

        n = len(self._root_segs)
        if n and dirs[:n] == self._root_segs:
            dirs = dirs[n:]
        return "/".join(dirs + [filename])

    def relative_link(self, from_url: str, to_url: str) -> str:
        """Reference to put in ``from_url``'s document so it points at ``to_url``'s file."""
        src = self.map(from_url)
        dst = self.map(to_url)
        rel = posixpath.relpath(dst, posixpath.dirname(src) or ".")
        return quote(rel, safe=LINK_SAFE_CHARS)
