import os
import unittest

from app.config import Settings


class TestConfig(unittest.TestCase):
    def test_settings_defaults(self):
        previous = os.environ.pop("WEBSETTINGS_SESSION_RETENTION_SECONDS", None)
        try:
            s = Settings()
            self.assertEqual(s.session_retention_seconds, 86400)
            self.assertEqual(s.key_bytes, 16)
            self.assertEqual(s.secret_bytes, 32)
            self.assertTrue(s.reaper_enabled)
        finally:
            if previous is not None:
                os.environ["WEBSETTINGS_SESSION_RETENTION_SECONDS"] = previous

    def test_retention_env_override(self):
        previous = os.environ.get("WEBSETTINGS_SESSION_RETENTION_SECONDS")
        try:
            os.environ["WEBSETTINGS_SESSION_RETENTION_SECONDS"] = "600"
            s = Settings()
            self.assertEqual(s.session_retention_seconds, 600)
        finally:
            if previous is None:
                os.environ.pop("WEBSETTINGS_SESSION_RETENTION_SECONDS", None)
            else:
                os.environ["WEBSETTINGS_SESSION_RETENTION_SECONDS"] = previous

    def test_log_level_is_normalized(self):
        previous = os.environ.get("WEBSETTINGS_LOG_LEVEL")
        try:
            os.environ["WEBSETTINGS_LOG_LEVEL"] = "debug"
            s = Settings()
            self.assertEqual(s.log_level, "DEBUG")
        finally:
            if previous is None:
                os.environ.pop("WEBSETTINGS_LOG_LEVEL", None)
            else:
                os.environ["WEBSETTINGS_LOG_LEVEL"] = previous


if __name__ == "__main__":
    unittest.main()
