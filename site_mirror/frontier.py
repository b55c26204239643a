"""
Crawl frontier: the FIFO work queue plus its scope, de-duplication and retry policy.

Every URL is accepted at most once. A URL comes back into the queue only as a
retry of its own failed fetch, and at most ``max_retries`` times.
"""

import logging
from collections import deque
from dataclasses import dataclass
from threading import Condition
from typing import Deque, Dict, List, Optional, Set

from .urls import Site, normalize_url


@dataclass
class CrawlTask:
    url: str
    attempts: int = 0


class Frontier:
    def __init__(self, site: Site, max_retries: int = 3):
        self.site = site
        self.max_retries = max_retries
        self._cond = Condition()
        self._queue: Deque[str] = deque()
        self._tasks: Dict[str, CrawlTask] = {}
        self._seen: Set[str] = set()
        self._abandoned: Set[str] = set()
        self._in_flight = 0
        self._stopped = False

    # -------------------- producers --------------------

    def seed(self, root_url: Optional[str] = None) -> bool:
        return self.enqueue(root_url or self.site.start)

    def enqueue(self, url: str) -> bool:
        """Queue ``url`` unless it is out of scope or was already accepted."""
        url = normalize_url(url)
        if not self.site.contains(url):
            logging.debug("out of scope: %s", url)
            return False
        with self._cond:
            if url in self._seen:
                return False
            self._seen.add(url)
            self._tasks[url] = CrawlTask(url)
            self._queue.append(url)
            self._cond.notify()
        return True

    def record_failure(self, url: str) -> bool:
        """Count a failed attempt. Returns True if the URL was queued again."""
        url = normalize_url(url)
        with self._cond:
            task = self._tasks.setdefault(url, CrawlTask(url))
            task.attempts += 1
            self._release()
            if task.attempts <= self.max_retries:
                self._queue.append(url)
                self._cond.notify_all()
                return True
            self._abandoned.add(url)
            del self._tasks[url]
            self._cond.notify_all()
        logging.warning("giving up on %s after %d attempts", url, task.attempts)
        return False

    def complete(self, url: str) -> None:
        with self._cond:
            self._tasks.pop(normalize_url(url), None)
            self._release()
            self._cond.notify_all()

    def _release(self) -> None:
        if self._in_flight > 0:
            self._in_flight -= 1

    # -------------------- consumers --------------------

    def dequeue(self, block: bool = False, timeout: Optional[float] = None) -> Optional[str]:
        """Next URL in FIFO order, or None.

        Non-blocking calls return None whenever the queue is empty. Blocking
        calls wait while other URLs are still in flight, since those may feed
        the queue, and return None once the crawl is done or stopped.
        """
        with self._cond:
            if block:
                self._cond.wait_for(
                    lambda: self._stopped or self._queue or self._in_flight == 0,
                    timeout=timeout,
                )
            if self._stopped or not self._queue:
                return None
            self._in_flight += 1
            return self._queue.popleft()

    def is_done(self) -> bool:
        with self._cond:
            return not self._queue and self._in_flight == 0

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    # -------------------- inspection --------------------

    @property
    def stopped(self) -> bool:
        return self._stopped

    def pending(self) -> List[str]:
        with self._cond:
            return list(self._queue)

    def attempts(self, url: str) -> int:
        with self._cond:
            task = self._tasks.get(normalize_url(url))
            return task.attempts if task else 0

    @property
    def abandoned(self) -> Set[str]:
        with self._cond:
            return set(self._abandoned)

    def __contains__(self, url: str) -> bool:
        with self._cond:
            return normalize_url(url) in self._seen

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
