from __future__ import annotations

import json
import os
import tempfile
import unittest

from app_registry import AppDefinition, AppRegistry
from dashboard_config import (
    AppConfig,
    DashboardConfig,
    enabled_class_names,
    load_config,
    merge_registered,
    save_config,
)


class DashboardConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "config.json")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def write(self, text: str) -> None:
        with open(self.path, "w", encoding="utf-8") as fh:
            fh.write(text)

    def test_missing_file_gives_empty_config(self) -> None:
        cfg = load_config(self.path)
        self.assertEqual(cfg.apps, [])
        self.assertEqual(cfg.current_app, 0)

    def test_corrupt_file_gives_empty_config(self) -> None:
        self.write("{not json")
        with self.assertLogs("dashboard_config", level="ERROR"):
            cfg = load_config(self.path)
        self.assertEqual(cfg.apps, [])

    def test_reads_web_configurator_format(self) -> None:
        self.write(json.dumps({
            "apps": [
                {"name": "Clock", "className": "Clock", "enabled": True},
                {"name": "Weather", "className": "Weather", "enabled": False},
                {"name": "broken"},
            ],
            "currentApp": 1,
        }))
        with self.assertLogs("dashboard_config", level="WARNING"):
            cfg = load_config(self.path)
        self.assertEqual([a.class_name for a in cfg.apps], ["Clock", "Weather"])
        self.assertEqual(enabled_class_names(cfg), ["Clock"])
        self.assertEqual(cfg.current_app, 1)

    def test_save_writes_camel_case_and_replaces_atomically(self) -> None:
        cfg = DashboardConfig(apps=[AppConfig("Status", "Status", False)])
        self.assertTrue(save_config(cfg, self.path))
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        self.assertEqual(data, {"apps": [{"name": "Status", "className": "Status", "enabled": False}], "currentApp": 0})
        self.assertEqual(os.listdir(self.tmp.name), ["config.json"])

    def test_save_into_missing_directory_fails_softly(self) -> None:
        with self.assertLogs("dashboard_config", level="ERROR"):
            ok = save_config(DashboardConfig(), os.path.join(self.tmp.name, "nope", "config.json"))
        self.assertFalse(ok)

    def test_merge_keeps_user_order_and_flags(self) -> None:
        registry = AppRegistry()
        for name in ("Clock", "Weather", "Status"):
            registry.register(AppDefinition(name, name, True, lambda d: None))
        cfg = DashboardConfig(apps=[AppConfig("Weather", "Weather", False), AppConfig("Clock", "Clock", True)])
        self.assertTrue(merge_registered(cfg, registry))
        self.assertEqual([a.class_name for a in cfg.apps], ["Weather", "Clock", "Status"])
        self.assertEqual(enabled_class_names(cfg), ["Clock", "Status"])
        self.assertFalse(merge_registered(cfg, registry))


if __name__ == "__main__":  # pragma: no cover
    unittest.main(exit=False)
