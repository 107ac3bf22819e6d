import asyncio
import os
import tempfile
import unittest

from quipbox.db import (
    InMemoryDbClient,
    NewMessage,
    SqlDbClient,
    UserRecord,
    new_message_id,
    parse_message_id,
)


class MessageIdTests(unittest.TestCase):
    def test_canonical_form(self):
        message_id = new_message_id()
        self.assertEqual(len(message_id), 32)
        self.assertEqual(parse_message_id(message_id.upper()), message_id)

    def test_malformed(self):
        for value in ("garbage", "", "1234", None, 42):
            self.assertIsNone(parse_message_id(value))


class DbClientContract:
    """Behaviour shared by every DbClient implementation."""

    async def make_db(self):
        raise NotImplementedError

    async def asyncSetUp(self):
        self.db = await self.make_db()

    async def test_upsert_creates_then_updates(self):
        self.assertIsNone(await self.db.get_user("u1"))
        await self.db.upsert_user_response("u1", "static")
        await self.db.upsert_user_response("u1", "json")
        user = await self.db.get_user("u1")
        self.assertEqual(user.user_id, "u1")
        self.assertEqual(user.response, "json")
        self.assertIsNone(user.messages_created)

    async def test_concurrent_upserts_of_a_new_user(self):
        await asyncio.gather(
            *(self.db.upsert_user_response("new", "static") for _ in range(5))
        )
        user = await self.db.get_user("new")
        self.assertEqual(user.response, "static")

    async def test_insert_and_lookup(self):
        ids = await self.db.insert_messages(
            [
                NewMessage(user_id="u1", category="quote", text="a"),
                NewMessage(
                    user_id="u1",
                    category="joke",
                    text="b",
                    active=False,
                    weight=2.5,
                    client_message_id="c-9",
                ),
            ]
        )
        self.assertEqual(len(ids), 2)
        self.assertEqual(len(set(ids)), 2)

        second = await self.db.get_message(ids[1])
        self.assertEqual(second.text, "b")
        self.assertFalse(second.active)
        self.assertEqual(second.weight, 2.5)
        self.assertEqual(second.client_message_id, "c-9")
        self.assertIsNone(await self.db.get_message(new_message_id()))

        batch = await self.db.get_messages([ids[0], ids[1], new_message_id()])
        self.assertEqual({m.message_id for m in batch}, set(ids))
        self.assertEqual(await self.db.get_messages([]), [])

    async def test_append_only_touches_existing_users(self):
        await self.db.upsert_user_response("u1", "default")
        self.assertTrue(await self.db.append_messages_created("u1", ["a", "b"]))
        self.assertTrue(await self.db.append_messages_created("u1", ["c"]))
        self.assertFalse(await self.db.append_messages_created("ghost", ["d"]))

        user = await self.db.get_user("u1")
        self.assertEqual(user.messages_created, ["a", "b", "c"])
        self.assertIsNone(await self.db.get_user("ghost"))

    async def test_sample_skips_inactive_and_filters_category(self):
        await self.db.insert_messages(
            [
                NewMessage(user_id="u1", category="quote", text="q"),
                NewMessage(user_id="u1", category="joke", text="j"),
                NewMessage(user_id="u1", category="joke", text="off", active=False),
                NewMessage(user_id="u2", category="joke", text="other"),
            ]
        )
        for _ in range(20):
            joke = await self.db.sample_active_message("u1", "joke")
            self.assertEqual(joke.text, "j")
        self.assertIsNone(await self.db.sample_active_message("u1", "poem"))
        self.assertIsNone(await self.db.sample_active_message("nobody"))

    async def test_sample_is_not_first_match(self):
        await self.db.insert_messages(
            [
                NewMessage(user_id="u1", category="quote", text="first"),
                NewMessage(user_id="u1", category="quote", text="second"),
            ]
        )
        seen = set()
        for _ in range(100):
            seen.add((await self.db.sample_active_message("u1")).text)
        self.assertEqual(seen, {"first", "second"})


class InMemoryDbClientTests(DbClientContract, unittest.IsolatedAsyncioTestCase):
    async def make_db(self):
        return InMemoryDbClient()

    async def test_reset(self):
        self.db.users["u1"] = UserRecord(user_id="u1")
        await self.db.insert_messages([NewMessage("u1", "quote", "x")])
        self.db.reset()
        self.assertEqual(self.db.users, {})
        self.assertEqual(self.db.messages, {})


class SqlDbClientTests(DbClientContract, unittest.IsolatedAsyncioTestCase):
    """
    Uses SQLite via aiosqlite for fast/local testing of the SQL client logic.
    """

    async def make_db(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, "quipbox.db")
        db = SqlDbClient("sqlite+aiosqlite://", path)
        await db.connect()
        return db

    async def asyncTearDown(self):
        await self.db.dispose()
        self.tmpdir.cleanup()

    async def test_upsert_keeps_other_columns(self):
        await self.db.upsert_user_response("u1", "static")
        await self.db.append_messages_created("u1", ["m1"])
        await self.db.upsert_user_response("u1", "default")
        user = await self.db.get_user("u1")
        self.assertEqual(user.response, "default")
        self.assertEqual(user.messages_created, ["m1"])

    async def test_unsupported_backend_is_rejected(self):
        with self.assertRaises(ValueError):
            SqlDbClient("mysql+aiomysql://localhost", "quipbox")

    async def test_connect_is_repeatable(self):
        await self.db.connect()
        await self.db.upsert_user_response("u1", "default")
        self.assertIsNotNone(await self.db.get_user("u1"))


if __name__ == "__main__":
    unittest.main()
