import threading
import unittest

from site_mirror.frontier import Frontier
from site_mirror.urls import Site

ROOT = "http://example.com/"


class FrontierTest(unittest.TestCase):
    def setUp(self):
        self.f = Frontier(Site(ROOT))

    def drain(self):
        out = []
        while True:
            url = self.f.dequeue()
            if url is None:
                return out
            out.append(url)
            self.f.complete(url)

    def test_seed_uses_site_start(self):
        self.assertTrue(self.f.seed())
        self.assertEqual(self.f.dequeue(), ROOT)

    def test_fifo_order(self):
        for p in ["a", "b", "c"]:
            self.f.enqueue(ROOT + p)
        self.assertEqual(self.drain(), [ROOT + "a", ROOT + "b", ROOT + "c"])

    def test_out_of_scope_silently_dropped(self):
        self.assertFalse(self.f.enqueue("http://other.org/"))
        self.assertFalse(self.f.enqueue("https://example.com/x"))
        self.assertEqual(len(self.f), 0)

    def test_duplicates_rejected_even_after_completion(self):
        self.assertTrue(self.f.enqueue(ROOT + "a"))
        self.assertFalse(self.f.enqueue(ROOT + "a"))
        self.assertEqual(self.drain(), [ROOT + "a"])
        self.assertFalse(self.f.enqueue(ROOT + "a"))
        self.assertFalse(self.f.enqueue("HTTP://EXAMPLE.COM:80/a#frag"))
        self.assertTrue(self.f.is_done())

    def test_retry_until_abandoned(self):
        url = ROOT + "flaky"
        self.f.enqueue(url)
        requeued = []
        for _ in range(4):
            self.assertEqual(self.f.dequeue(), url)
            requeued.append(self.f.record_failure(url))
        self.assertEqual(requeued, [True, True, True, False])
        self.assertIsNone(self.f.dequeue())
        self.assertIn(url, self.f.abandoned)
        self.assertFalse(self.f.enqueue(url))
        self.assertTrue(self.f.is_done())

    def test_attempts_counted(self):
        url = ROOT + "x"
        self.f.enqueue(url)
        self.f.dequeue()
        self.f.record_failure(url)
        self.assertEqual(self.f.attempts(url), 1)

    def test_retry_goes_to_back_of_queue(self):
        self.f.enqueue(ROOT + "a")
        self.f.enqueue(ROOT + "b")
        self.f.record_failure(self.f.dequeue())
        self.assertEqual(self.drain(), [ROOT + "b", ROOT + "a"])

    def test_is_done_tracks_in_flight(self):
        self.f.enqueue(ROOT + "a")
        url = self.f.dequeue()
        self.assertFalse(self.f.is_done())
        self.f.complete(url)
        self.assertTrue(self.f.is_done())

    def test_stop_keeps_pending(self):
        for p in ["a", "b"]:
            self.f.enqueue(ROOT + p)
        self.f.stop()
        self.assertIsNone(self.f.dequeue())
        self.assertIsNone(self.f.dequeue(block=True))
        self.assertEqual(self.f.pending(), [ROOT + "a", ROOT + "b"])

    def test_blocking_dequeue_returns_none_when_done(self):
        self.assertIsNone(self.f.dequeue(block=True, timeout=1))

    def test_blocking_dequeue_waits_for_in_flight_producer(self):
        self.f.enqueue(ROOT + "a")
        first = self.f.dequeue()
        got = []
        t = threading.Thread(target=lambda: got.append(self.f.dequeue(block=True, timeout=5)))
        t.start()
        self.f.enqueue(ROOT + "b")
        self.f.complete(first)
        t.join(5)
        self.assertEqual(got, [ROOT + "b"])

    def test_concurrent_workers_take_each_url_once(self):
        for i in range(200):
            self.f.enqueue(f"{ROOT}p{i}")
        taken = []
        lock = threading.Lock()

        def worker():
            while True:
                url = self.f.dequeue(block=True, timeout=5)
                if url is None:
                    return
                with lock:
                    taken.append(url)
                # every page links to its neighbour; only the first sighting counts
                n = int(url.rsplit("p", 1)[1])
                self.f.enqueue(f"{ROOT}p{(n + 1) % 250}")
                self.f.complete(url)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)
        self.assertEqual(len(taken), 250)
        self.assertEqual(len(set(taken)), 250)
        self.assertTrue(self.f.is_done())


if __name__ == "__main__":
    unittest.main()
