import logging
import re
from typing import Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, FeatureNotFound, UnicodeDammit

from .css_rewriter import CssRewriter
from .links import LinkRecords, LinkRewriter, RewriteResult

ATTR_MAP = {
    "a": ["href"],
    "link": ["href"],
    "script": ["src"],
    "img": ["src"],
    "source": ["src"],
    "video": ["src", "poster"],
    "audio": ["src"],
    "track": ["src"],
}
SRCSET_TAGS = {"img", "source"}
# subresource integrity no longer matches once the local copy is rewritten
SRI_ATTRS = ("integrity", "crossorigin")

SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")
WS_RE = re.compile(r"\s+")


# -------------------- HTML utils --------------------


def decode_html(body: bytes, transport_encoding: Optional[str] = None) -> Tuple[str, str]:
    """Decode a page: BOM first, then the HTTP charset, then the in-document declaration, then sniffing."""
    user = [transport_encoding] if transport_encoding else None
    dammit = UnicodeDammit(body, is_html=True, user_encodings=user)
    if dammit.unicode_markup is None:
        return body.decode("utf-8", errors="replace"), "utf-8"
    return dammit.unicode_markup, dammit.original_encoding or "utf-8"


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except FeatureNotFound:
        return BeautifulSoup(html, "html.parser")


def effective_base_url(soup: BeautifulSoup, fallback: str) -> str:
    tag = soup.find("base", href=True)
    if tag and tag.get("href"):
        try:
            return urljoin(fallback, tag["href"].strip())
        except ValueError:
            logging.debug("ignoring unparseable <base href=%r>", tag["href"])
    return fallback


def drop_base_href(soup: BeautifulSoup) -> None:
    for tag in soup.find_all("base", href=True):
        del tag["href"]
        if not tag.attrs:
            tag.decompose()


def serialize_html(soup: BeautifulSoup) -> str:
    return soup.decode(formatter="minimal")


# -------------------- Rewriter --------------------


class HtmlRewriter:
    def __init__(self, links: LinkRewriter, css: CssRewriter):
        self.links = links
        self.css = css

    def rewrite(
        self, body: bytes, page_url: str, transport_encoding: Optional[str] = None
    ) -> RewriteResult:
        html, encoding = decode_html(body, transport_encoding)
        logging.debug("decoded %s as %s", page_url, encoding)
        soup = bs4_parse(html)
        base = effective_base_url(soup, page_url)
        drop_base_href(soup)

        found = LinkRecords()
        for tag in soup.find_all(True):
            for attr in ATTR_MAP.get(tag.name, ()):
                self._rewrite_attr(tag, attr, base, page_url, found)
            if tag.name in SRCSET_TAGS and tag.get("srcset"):
                self._rewrite_srcset(tag, base, page_url, found)
            style = tag.get("style")
            if style:
                new_css = self.css.rewrite_text(style, base, page_url, found)
                if new_css != style:
                    tag["style"] = new_css
            if tag.name == "style" and tag.string:
                new_text = self.css.rewrite_text(tag.string, base, page_url, found)
                if new_text != tag.string:
                    tag.string.replace_with(type(tag.string)(new_text))

        # meta charset follows the output encoding on serialization
        return RewriteResult(serialize_html(soup), found.urls, "utf-8")

    def _rewrite_attr(self, tag, attr: str, base: str, page_url: str, found: LinkRecords) -> None:
        val = tag.get(attr)
        if not isinstance(val, str):
            return
        nu = self.links.rewrite(val, base, page_url, found)
        if nu is None:
            return
        tag[attr] = nu
        for rm in SRI_ATTRS:
            if rm in tag.attrs:
                del tag.attrs[rm]

    def _rewrite_srcset(self, tag, base: str, page_url: str, found: LinkRecords) -> None:
        srcset_val = tag.get("srcset", "")
        parts = []
        changed = False
        for candidate in SRCSET_SPLIT_RE.split(srcset_val.strip()):
            if not candidate:
                continue
            comp = WS_RE.split(candidate.strip())
            url_part = comp[0]
            desc = " ".join(comp[1:])
            nu = self.links.rewrite(url_part, base, page_url, found)
            if nu is not None:
                changed = True
                url_part = nu
            parts.append(f"{url_part} {desc}".strip())
        if changed:
            tag["srcset"] = ", ".join(parts)
