import json
import tempfile
import unittest
from dataclasses import asdict
from pathlib import Path
from unittest import mock

from config import Config
import config_persistence


class TestConfigPersistence(unittest.TestCase):
    def test_save_and_load_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            cfg = Config()
            cfg.tempo.frame_rate = 48.0
            cfg.tempo.energy_window = 43

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                self.assertTrue(config_persistence.save_config(cfg))
                loaded = config_persistence.load_config()

            self.assertAlmostEqual(loaded.tempo.frame_rate, 48.0, places=6)
            self.assertEqual(loaded.tempo.energy_window, 43)
            self.assertIsNone(loaded.tempo.expected_bins)

    def test_load_default_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()
            self.assertIsInstance(loaded, Config)
            self.assertEqual(loaded.tempo.frame_rate, 60.0)

    def test_load_migrates_and_autosaves(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            legacy = Config()
            legacy.version = 0
            legacy_data = asdict(legacy)
            legacy_data["tempo"]["energy_threshold"] = None
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump(legacy_data, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.version, 1)
            self.assertEqual(loaded.tempo.energy_threshold, 1.5)

            with open(cfg_file, "r", encoding="utf-8") as f:
                persisted = json.load(f)
            self.assertEqual(persisted["version"], 1)
            self.assertEqual(persisted["tempo"]["energy_threshold"], 1.5)

    def test_load_invalid_json_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                f.write("{invalid json")

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertIsInstance(loaded, Config)

    def test_save_failure_returns_false(self):
        cfg = Config()

        with mock.patch.object(config_persistence, "get_config_file", side_effect=OSError("boom")):
            self.assertFalse(config_persistence.save_config(cfg))

    def test_config_dir_under_home(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch.object(config_persistence.Path, "home", return_value=Path(tmpdir)):
                config_dir = config_persistence.get_config_dir()
                config_file = config_persistence.get_config_file()

            self.assertEqual(config_dir, Path(tmpdir) / ".bpmsense")
            self.assertTrue(config_dir.is_dir())
            self.assertEqual(config_file, config_dir / "config.json")


if __name__ == "__main__":
    unittest.main()
