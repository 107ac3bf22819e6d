import asyncio
import os
import tempfile
import unittest
from unittest.mock import patch

from quipbox import dependencies
from quipbox.config import ConfigurationError, Settings
from quipbox.db import InMemoryDbClient, SqlDbClient


def settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


class GetDbClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        await dependencies.reset_db_client()

    async def asyncTearDown(self):
        await dependencies.reset_db_client()

    @patch("quipbox.dependencies.get_settings")
    async def test_in_memory_client_is_cached(self, mock_settings):
        mock_settings.return_value = settings(use_in_memory_backends=True)
        first = await dependencies.get_db_client()
        second = await dependencies.get_db_client()
        self.assertIsInstance(first, InMemoryDbClient)
        self.assertIs(first, second)

    @patch("quipbox.dependencies.get_settings")
    async def test_missing_database_settings_fail_fast(self, mock_settings):
        mock_settings.return_value = settings(database_name="quipbox")
        with self.assertRaises(ConfigurationError):
            await dependencies.get_db_client()

        mock_settings.return_value = settings(database_url="sqlite+aiosqlite://")
        with self.assertRaises(ConfigurationError):
            await dependencies.get_db_client()

    async def test_concurrent_first_calls_build_one_client(self):
        calls = []

        async def slow_create(_settings):
            calls.append(1)
            await asyncio.sleep(0.01)
            return InMemoryDbClient()

        with patch.object(dependencies, "_create_db_client", slow_create):
            clients = await asyncio.gather(
                *(dependencies.get_db_client() for _ in range(5))
            )
        self.assertEqual(len(calls), 1)
        self.assertTrue(all(client is clients[0] for client in clients))

    @patch.object(SqlDbClient, "dispose")
    @patch.object(SqlDbClient, "connect", side_effect=OSError("connection refused"))
    @patch("quipbox.dependencies.get_settings")
    async def test_failed_connect_disposes_engine(
        self, mock_settings, mock_connect, mock_dispose
    ):
        mock_settings.return_value = settings(
            database_url="postgresql+asyncpg://localhost", database_name="quipbox"
        )
        with self.assertRaises(OSError):
            await dependencies.get_db_client()
        mock_dispose.assert_awaited_once()
        self.assertIsNone(dependencies._db_client)

    @patch("quipbox.dependencies.get_settings")
    async def test_sql_client_connects_on_first_use(self, mock_settings):
        with tempfile.TemporaryDirectory() as tmpdir:
            mock_settings.return_value = settings(
                database_url="sqlite+aiosqlite://",
                database_name=os.path.join(tmpdir, "quipbox.db"),
            )
            client = await dependencies.get_db_client()
            self.assertIsInstance(client, SqlDbClient)
            await client.upsert_user_response("u1", "default")
            self.assertIs(await dependencies.get_db_client(), client)
            await dependencies.reset_db_client()


if __name__ == "__main__":
    unittest.main()
