"""Config loading/validation, logger setup and the in-process cache."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import unittest
from datetime import time
from unittest.mock import patch

from fulfillment.clients.llm.config import LLMConfig
from fulfillment.config import DispatchConfig, PostgresConfig, RedisConfig, load_dispatch_config, parse_window
from fulfillment.core.logger import LoggerConfig, PlainConsoleFormatter, configure, get_logger
from fulfillment.infra.cache import MemoryCache, RedisCache, build_cache


def _run(coro):
    return asyncio.run(coro)


class TestDispatchConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        config = DispatchConfig()
        self.assertEqual(config.offer_timeout_seconds, 180)
        self.assertEqual(config.auto_cancel_age_hours, 20)
        self.assertEqual(config.shifts[1], (time(6), time(14)))
        self.assertEqual(str(config.tz), "Asia/Jakarta")

    def test_parse_window(self) -> None:
        self.assertEqual(parse_window(" 22:00 - 06:00 "), (time(22), time(6)))
        for bad in ("", "6-14", "25:00-06:00", "06:00-06:00"):
            with self.assertRaises(ValueError, msg=bad):
                parse_window(bad)

    def test_overlapping_shifts_rejected(self) -> None:
        with self.assertRaises(ValueError):
            DispatchConfig(shifts={1: parse_window("06:00-14:00"), 2: parse_window("13:00-22:00")})
        with self.assertRaises(ValueError):
            DispatchConfig(shifts={1: parse_window("20:00-02:00"), 2: parse_window("01:00-06:00")})

    def test_invalid_values_rejected(self) -> None:
        with self.assertRaises(ValueError):
            DispatchConfig(offer_timeout_seconds=0)
        with self.assertRaises(ValueError):
            DispatchConfig(timezone="Mars/Olympus")
        with self.assertRaises(ValueError):
            DispatchConfig(shifts={})
        with self.assertRaises(ValueError):
            DispatchConfig(default_country_code="+62")

    def test_from_env(self) -> None:
        env = {"OFFER_TIMEOUT_SECONDS": "90", "SHIFT_2_WINDOW": "14:00-23:00"}
        with patch.dict(os.environ, env, clear=False):
            config = load_dispatch_config(auto_cancel_batch_size=5)
        self.assertEqual(config.offer_timeout_seconds, 90)
        self.assertEqual(config.auto_cancel_batch_size, 5)
        self.assertEqual(config.shifts[2], (time(14), time(23)))


class TestConnectionConfigs(unittest.TestCase):
    def test_postgres_url_validation(self) -> None:
        self.assertEqual(PostgresConfig(url="postgres://db/x").pool_size, 10)
        with self.assertRaises(ValueError):
            PostgresConfig(url="mysql://db/x")
        with self.assertRaises(ValueError):
            PostgresConfig(url="postgresql://db/x", pool_size=0)

    def test_redis_enabled_only_with_url(self) -> None:
        self.assertFalse(RedisConfig().enabled)
        self.assertTrue(RedisConfig(url="redis://localhost:6379/0").enabled)
        with self.assertRaises(ValueError):
            RedisConfig(url="http://localhost")

    def test_build_cache_picks_backend(self) -> None:
        self.assertIsInstance(build_cache(RedisConfig()), MemoryCache)
        self.assertIsInstance(build_cache(RedisConfig(url="redis://localhost:6379/0")), RedisCache)


class TestLLMConfig(unittest.TestCase):
    def test_provider_inferred_from_key(self) -> None:
        env = {"OPENAI_API_KEY": "sk-test"}
        with patch.dict(os.environ, env, clear=True):
            config = LLMConfig.from_env()
        self.assertEqual(config.provider, "openai")
        self.assertEqual(config.api_key, "sk-test")
        self.assertEqual(config.resolved_model, "gpt-4o-mini")

    def test_no_provider(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = LLMConfig.from_env()
        self.assertIsNone(config.provider)
        self.assertIsNone(config.resolved_model)

    def test_unknown_provider_rejected(self) -> None:
        with self.assertRaises(ValueError):
            LLMConfig(provider="llama")


class TestMemoryCache(unittest.TestCase):
    def setUp(self) -> None:
        self.now = 1000.0
        self.cache = MemoryCache(clock=lambda: self.now)

    def test_ttl_expiry(self) -> None:
        _run(self.cache.set("k", "v", ttl=10))
        self.assertEqual(_run(self.cache.get("k")), "v")
        self.now += 10
        self.assertIsNone(_run(self.cache.get("k")))

    def test_set_if_absent(self) -> None:
        self.assertTrue(_run(self.cache.set_if_absent("flag", "1", ttl=5)))
        self.assertFalse(_run(self.cache.set_if_absent("flag", "2", ttl=5)))
        self.now += 5
        self.assertTrue(_run(self.cache.set_if_absent("flag", "3", ttl=5)))
        self.assertEqual(_run(self.cache.get("flag")), "3")

    def test_sets(self) -> None:
        _run(self.cache.add_members("online", ["a", "b"]))
        _run(self.cache.remove_members("online", ["a"]))
        self.assertEqual(_run(self.cache.members("online")), {"b"})
        _run(self.cache.remove_members("online", ["b"]))
        self.assertEqual(_run(self.cache.members("online")), set())
        _run(self.cache.remove_members("missing", ["x"]))


class TestLogger(unittest.TestCase):
    def test_json_file_carries_context_fields(self) -> None:
        with tempfile.TemporaryDirectory() as log_dir:
            configure(LoggerConfig(root_name="fulfillment_logtest", log_dir=log_dir, console=False))
            root = logging.getLogger("fulfillment_logtest")
            self.addCleanup(root.handlers.clear)
            get_logger("fulfillment_logtest.dispatch").info("offer sent", extra={"order_id": "ORD-1"})
            for handler in root.handlers:
                handler.close()
            with open(os.path.join(log_dir, "fulfillment.log"), encoding="utf-8") as fh:
                record = json.loads(fh.readline())
        self.assertEqual(record["message"], "offer sent")
        self.assertEqual(record["order_id"], "ORD-1")
        self.assertEqual(record["logger"], "fulfillment_logtest.dispatch")

    def test_console_format_appends_context(self) -> None:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "assigned", None, None)
        record.courier_id = "c-1"
        self.assertTrue(PlainConsoleFormatter().format(record).endswith("assigned [courier_id=c-1]"))

    def test_from_env(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "debug", "LOG_CONSOLE": "false"}, clear=True):
            config = LoggerConfig.from_env()
        self.assertEqual(config.level, "DEBUG")
        self.assertFalse(config.console)
        self.assertIsNone(config.log_dir)


if __name__ == "__main__":
    unittest.main()
