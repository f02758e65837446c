import threading
import unittest

from lattice_onboard.session import LAST_ERROR, SessionContext


class TestSessionContext(unittest.TestCase):

    def test_set_get_pop(self):
        session = SessionContext()
        session.set("k", 1)

        self.assertEqual(session.get("k"), 1)
        self.assertEqual(session.pop("k"), 1)
        self.assertIsNone(session.get("k"))
        self.assertEqual(session.get("k", "default"), "default")

    def test_record_error_and_clear_on_success(self):
        session = SessionContext()
        session.record_error("boom")
        self.assertEqual(session.get(LAST_ERROR), "boom")

        session.record_error(None)
        self.assertNotIn(LAST_ERROR, session.snapshot())

    def test_snapshot_is_a_copy(self):
        session = SessionContext()
        session.set("k", "v")

        snap = session.snapshot()
        snap["k"] = "changed"

        self.assertEqual(session.get("k"), "v")

    def test_concurrent_writers(self):
        session = SessionContext()

        def write(n):
            for i in range(200):
                session.set(f"{n}-{i}", i)

        threads = [threading.Thread(target=write, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(session.snapshot()), 8 * 200)

        session.clear()
        self.assertEqual(session.snapshot(), {})


if __name__ == "__main__":
    unittest.main()
