import posixpath
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

NON_FETCHABLE_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:", "blob:")
DEFAULT_PORTS = {"http": 80, "https": 443}


def can_fetch_url(u: Optional[str]) -> bool:
    if not u:
        return False
    u = u.strip()
    if not u or u.lower().startswith(NON_FETCHABLE_PREFIXES):
        return False
    return True


def normalize_url(u: str) -> str:
    """Canonical form used for scope tests, de-duplication and path mapping.

    Scheme and host are lowercased, default ports dropped, an empty path
    becomes ``/`` and the fragment is removed. The query is kept verbatim.
    """
    p = urlsplit(u.strip())
    scheme = p.scheme.lower()
    netloc = p.netloc
    if p.hostname:
        host = p.hostname
        if ":" in host:
            host = f"[{host}]"
        try:
            port = p.port
        except ValueError:
            port = None
        userinfo = netloc.rpartition("@")[0]
        netloc = host
        if port is not None and port != DEFAULT_PORTS.get(scheme):
            netloc = f"{host}:{port}"
        if userinfo:
            netloc = f"{userinfo}@{netloc}"
    path = p.path or "/"
    return urlunsplit((scheme, netloc, path, p.query, ""))


class Site:
    """The mirrored site: where the crawl starts and which URLs belong to it.

    ``root`` is the scope prefix and always ends with ``/``. A root given as a
    file (``http://example.com/docs/index.html``) is scoped to its directory
    and the crawl starts at the file itself.
    """

    def __init__(self, root_url: str):
        start = normalize_url(root_url)
        p = urlsplit(start)
        if p.scheme not in DEFAULT_PORTS or not p.netloc:
            raise ValueError(f"root URL must be an absolute http(s) URL: {root_url!r}")
        path = p.path
        if not path.endswith("/"):
            if posixpath.splitext(posixpath.basename(path))[1]:
                path = path.rsplit("/", 1)[0] + "/"
            else:
                path += "/"
                start = urlunsplit((p.scheme, p.netloc, path, p.query, ""))
        self.root = urlunsplit((p.scheme, p.netloc, path, "", ""))
        self.start = start
        self.path = path

    def contains(self, url: str) -> bool:
        # literal prefix test, both sides normalized
        return normalize_url(url).startswith(self.root)

    def __repr__(self) -> str:
        return f"Site({self.root!r})"
