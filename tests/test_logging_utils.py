import logging
import unittest

from utils import logging_utils
from utils.logging_utils import build_logging_config, get_tagged_logger, mask_token


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        self.records.append(record)


class TestLoggingUtils(unittest.TestCase):
    def test_build_logging_config_has_expected_handlers_and_filters(self):
        cfg = build_logging_config(job_name="jobtest")
        self.assertIn("stdout", cfg["handlers"])
        self.assertIn("stderr", cfg["handlers"])
        self.assertEqual(cfg["filters"]["job_name"]["job_name"], "jobtest")

    def test_default_job_name(self):
        cfg = build_logging_config()
        self.assertEqual(cfg["filters"]["job_name"]["job_name"], "stb-web-settings")

    def test_get_tagged_logger_injects_tag(self):
        handler = _ListHandler()
        logger = get_tagged_logger("websettings.test", tag="custom_tag")
        base_logger = logger.logger
        base_logger.setLevel(logging.DEBUG)
        base_logger.addHandler(handler)
        base_logger.propagate = False
        try:
            logger.info("hello world")
            self.assertEqual(handler.records[-1].tag, "custom_tag")
        finally:
            base_logger.removeHandler(handler)

    def test_setup_logging_override_applies_filters(self):
        root = logging.getLogger()
        orig_handlers = root.handlers[:]
        orig_level = root.level
        try:
            logging_utils.setup_logging(level="INFO", job_name="jobtest", override_existing=True)
            self.assertTrue(
                any(
                    any(f.__class__.__name__ == "JobNameFilter" for f in h.filters)
                    for h in root.handlers
                )
            )
        finally:
            root.handlers = orig_handlers
            root.setLevel(orig_level)
            logging_utils._CONFIGURED = False


class TestMaskToken(unittest.TestCase):
    def test_keeps_only_prefix(self):
        self.assertEqual(mask_token("Xk3pQ9aZbbbbcccc"), "Xk3p***")

    def test_short_and_empty_tokens_fully_masked(self):
        self.assertEqual(mask_token("abcd"), "***")
        self.assertEqual(mask_token(""), "***")
        self.assertEqual(mask_token(None), "***")


if __name__ == "__main__":
    unittest.main()
