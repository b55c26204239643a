import logging
import os
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Iterable, Optional

from .paths import PathMapper

LOCK_STRIPES = 64


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


class ContentWriter:
    """Persists mirrored resources under the site directory.

    Each file is written to a ``.part`` sibling and moved into place, so the
    mapped path only ever holds complete content. Writers targeting the same
    path (two URLs that sanitize to one name) are serialized through a fixed
    set of striped locks.
    """

    def __init__(self, root: Path, mapper: PathMapper):
        self.root = Path(root)
        self.mapper = mapper
        self._locks = [Lock() for _ in range(LOCK_STRIPES)]

    def path_for(self, url: str) -> Path:
        return self.root.joinpath(*self.mapper.map(url).split("/"))

    def _lock_for(self, path: Path) -> Lock:
        return self._locks[hash(path) % len(self._locks)]

    def write_text(
        self, url: str, text: str, encoding: str = "utf-8", modified: Optional[datetime] = None
    ) -> Path:
        return self.write_bytes(url, text.encode(encoding, errors="replace"), modified)

    def write_bytes(self, url: str, body: bytes, modified: Optional[datetime] = None) -> Path:
        return self.write_stream(url, (body,), modified)

    def write_stream(
        self, url: str, chunks: Iterable[bytes], modified: Optional[datetime] = None
    ) -> Path:
        """Write ``chunks`` as they arrive. If the iterator raises, nothing is left behind."""
        path = self.path_for(url)
        size = 0
        with self._lock_for(path):
            ensure_parent_dir(path)
            tmp = path.with_name(path.name + ".part")
            try:
                with open(tmp, "wb") as f:
                    for chunk in chunks:
                        f.write(chunk)
                        size += len(chunk)
                os.replace(tmp, path)
            finally:
                if tmp.exists():
                    tmp.unlink()
            if modified is not None:
                ts = modified.timestamp()
                os.utime(path, (ts, ts))
        logging.debug("wrote %d bytes to %s", size, path)
        return path
