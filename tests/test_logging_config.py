import sys

from loguru import logger

from evoplanets.logging_config import setup_logging


def test_file_sink_receives_messages(tmp_path):
    log_file = tmp_path / 'logs' / 'run.log'
    try:
        setup_logging('DEBUG', log_file, enable_colors=False)
        logger.info('[Test] hello planets')
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)
    text = log_file.read_text(encoding='utf-8')
    assert '[Test] hello planets' in text
    assert 'INFO' in text


def test_level_filters_debug(tmp_path):
    log_file = tmp_path / 'quiet.log'
    try:
        setup_logging('warning', log_file, enable_colors=False)
        logger.debug('[Test] hidden')
        logger.warning('[Test] shown')
    finally:
        logger.remove()
        logger.add(sys.stderr)
    text = log_file.read_text(encoding='utf-8')
    assert 'hidden' not in text
    assert 'shown' in text
