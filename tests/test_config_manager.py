import errno
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from daybridge.config_manager import ConfigManager
from daybridge.credentials import resolve_password
from daybridge.errors import CredentialError
from daybridge.models import AppConfig, CalDAVConfig


class ConfigManagerTests(unittest.TestCase):
    def test_missing_file_is_created_with_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "nested" / "config.yaml"
            manager = ConfigManager(str(config_path))
            self.assertTrue(config_path.exists())
            config = manager.load()
            self.assertEqual(config.document.plan_section, "Daily Plan")
            self.assertEqual(config.document.log_section, "Daily Log")
            self.assertEqual(config.sync.excluded_calendar_keywords, ["holiday"])

    def test_save_fallback_when_replace_ebusy(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.yaml"
            manager = ConfigManager(str(config_path))
            config = AppConfig.from_dict(
                {
                    "caldav": {"base_url": "https://dav.example.com", "username": "u", "password": "p"},
                    "document": {"vault_path": "/notes", "plan_calendar_name": "Tagesplan"},
                }
            )

            original_replace = Path.replace

            def replace_side_effect(self: Path, target: Path) -> Path:
                if str(self).endswith(".tmp"):
                    raise OSError(errno.EBUSY, "Device or resource busy")
                return original_replace(self, target)

            with mock.patch("pathlib.Path.replace", new=replace_side_effect):
                manager.save(config)

            self.assertTrue(config_path.exists())
            self.assertFalse(Path(str(config_path) + ".tmp").exists())
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            self.assertEqual(data["caldav"]["base_url"], "https://dav.example.com")
            self.assertEqual(data["document"]["plan_calendar_name"], "Tagesplan")

    def test_update_merges_and_keeps_masked_secret(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            manager.update({"caldav": {"username": "u", "password": "secret"}})

            config = manager.update({"caldav": {"password": "***"}, "sync": {"timezone": "Europe/Berlin"}})
            self.assertEqual(config.caldav.password, "secret")
            self.assertEqual(config.caldav.username, "u")
            self.assertEqual(config.sync.timezone, "Europe/Berlin")

            config = manager.update({"caldav": {"password": ""}})
            self.assertEqual(config.caldav.password, "secret")
            self.assertEqual(manager.masked()["caldav"]["password"], "***")

    def test_masked_leaves_empty_secret_empty(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            manager = ConfigManager(str(Path(temp_dir) / "config.yaml"))
            self.assertEqual(manager.masked()["caldav"]["password"], "")


class ResolvePasswordTests(unittest.TestCase):
    def test_literal_password_wins(self) -> None:
        self.assertEqual(resolve_password(CalDAVConfig(password="p", password_env="UNUSED")), "p")

    def test_password_from_environment(self) -> None:
        with mock.patch.dict(os.environ, {"DAYBRIDGE_TEST_PASSWORD": "from-env"}):
            self.assertEqual(resolve_password(CalDAVConfig(password_env="DAYBRIDGE_TEST_PASSWORD")), "from-env")

    def test_unset_environment_variable(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop("DAYBRIDGE_TEST_PASSWORD", None)
            with self.assertRaises(CredentialError):
                resolve_password(CalDAVConfig(password_env="DAYBRIDGE_TEST_PASSWORD"))

    def test_nothing_configured(self) -> None:
        with self.assertRaises(CredentialError):
            resolve_password(CalDAVConfig())


if __name__ == "__main__":
    unittest.main()
