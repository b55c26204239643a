from .frontier import CrawlTask, Frontier
from .mirror import CrawlStats, SiteMirror
from .paths import PathMapper
from .settings import Settings
from .urls import Site

__all__ = [
    "CrawlStats",
    "CrawlTask",
    "Frontier",
    "PathMapper",
    "Settings",
    "Site",
    "SiteMirror",
]
