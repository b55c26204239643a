import re

from .links import LinkRecords, LinkRewriter, RewriteResult

CSS_URL_RE = re.compile(r"\burl\s*\(\s*([\"']?)([^\"')]+)\1\s*\)", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"@import\s+([\"'])([^\"']+)\1", re.IGNORECASE)


class CssRewriter:
    def __init__(self, links: LinkRewriter):
        self.links = links

    def rewrite_text(
        self, css_text: str, base_url: str, doc_url: str, found: LinkRecords
    ) -> str:
        """Rewrite in-scope ``url()`` and ``@import`` references in ``css_text``.

        ``base_url`` resolves relative references; ``doc_url`` is the document
        whose output location the new references are relative to. For a
        stylesheet both are the stylesheet's URL, for inline styles the page's.
        """

        def repl_url(m: re.Match) -> str:
            nu = self.links.rewrite(m.group(2).strip(), base_url, doc_url, found)
            if nu is None:
                return m.group(0)
            return f"url('{nu}')"

        def repl_import(m: re.Match) -> str:
            nu = self.links.rewrite(m.group(2).strip(), base_url, doc_url, found)
            if nu is None:
                return m.group(0)
            return f"@import '{nu}'"

        t = CSS_URL_RE.sub(repl_url, css_text)
        t = CSS_IMPORT_RE.sub(repl_import, t)
        return t

    def rewrite(self, body: bytes, css_url: str, encoding: str = "utf-8") -> RewriteResult:
        text = body.decode(encoding, errors="replace")
        found = LinkRecords()
        new_text = self.rewrite_text(text, css_url, css_url, found)
        return RewriteResult(new_text, found.urls, encoding)
