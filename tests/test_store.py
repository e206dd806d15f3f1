import tempfile
import threading
import unittest
from pathlib import Path

from store import AGENT_STATS, CLAIMS, REGISTRY, SIGNALS, DocumentStore


class DocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = DocumentStore(Path(self.tmpdir.name) / "store.db")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_missing_documents_load_as_defaults(self):
        self.assertEqual(self.store.load(SIGNALS), [])
        self.assertEqual(self.store.load(REGISTRY), {"agents": {}, "api_keys": {}})
        self.assertEqual(self.store.load(CLAIMS), {"claims": {}, "history": []})

    def test_unknown_document_is_rejected(self):
        with self.assertRaises(KeyError):
            self.store.load("nope")

    def test_load_returns_private_copy(self):
        doc = self.store.load(REGISTRY)
        doc["agents"]["x"] = {"name": "leak"}
        self.assertEqual(self.store.load(REGISTRY)["agents"], {})

    def test_transaction_commits_all_documents_together(self):
        with self.store.transaction(SIGNALS, AGENT_STATS) as docs:
            docs[SIGNALS].append({"signal_id": "s1"})
            docs[AGENT_STATS]["a1"] = {"points": 1, "signals": 1}

        self.assertEqual(self.store.load(SIGNALS), [{"signal_id": "s1"}])
        self.assertEqual(self.store.load(AGENT_STATS)["a1"]["points"], 1)

    def test_transaction_writes_nothing_when_block_raises(self):
        with self.assertRaises(RuntimeError):
            with self.store.transaction(SIGNALS, AGENT_STATS) as docs:
                docs[SIGNALS].append({"signal_id": "s1"})
                docs[AGENT_STATS]["a1"] = {"points": 1}
                raise RuntimeError("boom")

        self.assertEqual(self.store.load(SIGNALS), [])
        self.assertEqual(self.store.load(AGENT_STATS), {})

    def test_documents_survive_a_new_store_instance(self):
        self.store.save(SIGNALS, [{"signal_id": "persisted"}])
        reopened = DocumentStore(Path(self.tmpdir.name) / "store.db")
        self.assertEqual(reopened.load(SIGNALS), [{"signal_id": "persisted"}])

    def test_concurrent_increments_are_not_lost(self):
        def worker():
            for _ in range(20):
                with self.store.transaction(AGENT_STATS) as docs:
                    entry = docs[AGENT_STATS].setdefault("a1", {"points": 0})
                    entry["points"] += 1

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.store.load(AGENT_STATS)["a1"]["points"], 100)


if __name__ == "__main__":
    unittest.main()
