import sys

from loguru import logger

from solguard.logging import configure_logging


def test_configure_logging_writes_file_sink(tmp_path):
    log_file = tmp_path / "solguard.log"
    try:
        configure_logging("warning", log_file=log_file)
        logger.debug("GUARD_SIMULATE | units=1 | fee=5000")
        logger.complete()
        assert "GUARD_SIMULATE | units=1" in log_file.read_text(encoding="utf-8")
    finally:
        logger.remove()
        logger.add(sys.stderr)
