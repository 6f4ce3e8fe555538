import json
import time
import unittest
from unittest.mock import MagicMock, patch

from gallery.sessions import InMemorySessionStore, RedisSessionStore


class InMemorySessionStoreTests(unittest.TestCase):
    def test_create_get_delete(self):
        store = InMemorySessionStore()
        record = store.create("admin@example.com", 3600)
        self.assertEqual(store.get(record.session_id).email, "admin@example.com")

        store.delete(record.session_id)
        self.assertIsNone(store.get(record.session_id))

    def test_expired_session_is_dropped(self):
        store = InMemorySessionStore()
        record = store.create("admin@example.com", 3600)
        record.expires_at = time.time() - 1
        self.assertIsNone(store.get(record.session_id))
        self.assertNotIn(record.session_id, store.sessions)

    def test_ids_are_unique(self):
        store = InMemorySessionStore()
        ids = {store.create("admin@example.com", 60).session_id for _ in range(50)}
        self.assertEqual(len(ids), 50)


class RedisSessionStoreTests(unittest.TestCase):
    @patch("gallery.sessions.redis.Redis.from_url")
    def test_uses_key_expiry(self, from_url):
        client = MagicMock()
        from_url.return_value = client
        store = RedisSessionStore(url="redis://localhost:6379/0")

        record = store.create("admin@example.com", 3600)

        key, payload = client.set.call_args.args
        self.assertEqual(key, f"gallery:session:{record.session_id}")
        self.assertEqual(client.set.call_args.kwargs["ex"], 3600)

        client.get.return_value = payload.encode("utf-8")
        self.assertEqual(store.get(record.session_id).email, "admin@example.com")

        client.get.return_value = json.dumps(
            {"email": "admin@example.com", "expires_at": time.time() - 1}
        )
        self.assertIsNone(store.get(record.session_id))

        client.get.return_value = None
        self.assertIsNone(store.get("missing"))

        store.delete(record.session_id)
        client.delete.assert_called_once_with(f"gallery:session:{record.session_id}")


if __name__ == "__main__":
    unittest.main()
