import unittest
from pathlib import Path

from ccsm.config import Settings


class SettingsTests(unittest.TestCase):
    def test_defaults_from_home(self) -> None:
        settings = Settings.from_env({"HOME": "/home/dev"})

        self.assertEqual(settings.config_dir, Path("/home/dev/.claude"))
        self.assertEqual(settings.projects_dir, Path("/home/dev/.claude/projects"))
        self.assertEqual(settings.settings_file, Path("/home/dev/.claude/settings.json"))
        self.assertEqual(settings.user_claude_md, Path("/home/dev/.claude/CLAUDE.md"))
        self.assertEqual(settings.user_skills_dir, Path("/home/dev/.claude/skills"))
        self.assertEqual(settings.user_config_file, Path("/home/dev/.claude.json"))
        self.assertEqual(settings.port, 3581)
        self.assertEqual(settings.cors_origin, "http://localhost:5173")
        self.assertTrue(settings.watch_enabled)
        self.assertFalse(settings.otel_enabled)

    def test_claude_config_dir_override(self) -> None:
        settings = Settings.from_env({"HOME": "/home/dev", "CLAUDE_CONFIG_DIR": "/data/claude"})
        self.assertEqual(settings.projects_dir, Path("/data/claude/projects"))
        self.assertEqual(settings.user_config_file, Path("/home/dev/.claude.json"))

    def test_prefixed_names_win_over_fallbacks(self) -> None:
        settings = Settings.from_env(
            {
                "HOME": "/home/dev",
                "PORT": "4000",
                "CCSM_PORT": "5000",
                "CORS_ORIGIN": "http://fallback",
                "CCSM_WATCH_ENABLED": "off",
                "CCSM_LOG_LEVEL": "debug",
            }
        )
        self.assertEqual(settings.port, 5000)
        self.assertEqual(settings.cors_origin, "http://fallback")
        self.assertFalse(settings.watch_enabled)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_bad_integers_fall_back_to_defaults(self) -> None:
        settings = Settings.from_env({"HOME": "/home/dev", "CCSM_PORT": "abc", "CCSM_WATCH_DEBOUNCE_MS": "-5"})
        self.assertEqual(settings.port, 3581)
        self.assertEqual(settings.watch_debounce_ms, 0)

    def test_settings_are_immutable(self) -> None:
        settings = Settings.for_config_dir(Path("/tmp/claude"))
        with self.assertRaises(AttributeError):
            settings.port = 1  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
