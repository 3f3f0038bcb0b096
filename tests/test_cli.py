import io
import logging
import sys

import pytest

from buildtools.cli import LogWriter, MarkupHandler, is_verbose, render_markup


def test_render_markup_green():
    assert render_markup("<green>msg</green>") == "\x1b[0m\x1b[32mmsg\x1b[39m\x1b[0m"


def test_render_markup_plain_text():
    assert render_markup("plain") == "\x1b[0mplain\x1b[0m"


def test_render_markup_unknown_tag_is_kept():
    assert render_markup("<nothing>x") == "\x1b[0m<nothing>x\x1b[0m"


def test_render_markup_nested_colours_restore_outer():
    result = render_markup("<red>a<green>b</green>c</red>")
    assert result == "\x1b[0m\x1b[31ma\x1b[32mb\x1b[31mc\x1b[39m\x1b[0m"


def test_handler_defaults_to_stdout():
    handler = MarkupHandler()
    assert handler.stream is sys.stdout


def test_handler_writes_given_stream():
    buffer = io.StringIO()
    handler = MarkupHandler(buffer)
    assert handler.stream is buffer


def test_handler_emit_renders_markup():
    buffer = io.StringIO()
    handler = MarkupHandler(buffer)
    record = logging.makeLogRecord({"msg": "<green>msg</green>", "levelno": logging.WARNING})
    handler.handle(record)
    assert buffer.getvalue() == "\x1b[0m\x1b[32mmsg\x1b[39m\x1b[0m"


def test_handler_via_logger():
    buffer = io.StringIO()
    logger = logging.getLogger("buildtools.tests.markup")
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    handler = MarkupHandler(buffer)
    logger.addHandler(handler)
    try:
        logger.info("hello %s", "world")
    finally:
        logger.removeHandler(handler)
    assert buffer.getvalue() == "\x1b[0mhello world\x1b[0m"


def test_log_writer_rejects_non_logger():
    with pytest.raises(TypeError):
        LogWriter(object())


def test_log_writer_write_returns_length(caplog):
    logger = logging.getLogger("buildtools.tests.writer")
    writer = LogWriter(logger)
    with caplog.at_level(logging.INFO, logger=logger.name):
        written = writer.write(b"test")
    assert written == len("test")
    assert [r.getMessage() for r in caplog.records] == ["test\n"]


def test_log_writer_splits_lines(caplog):
    logger = logging.getLogger("buildtools.tests.writer.lines")
    writer = LogWriter(logger)
    with caplog.at_level(logging.INFO, logger=logger.name):
        writer.write("one\r\n\ntwo\n")
    assert [r.getMessage() for r in caplog.records] == ["one\n", "\n", "two\n"]


def test_is_verbose():
    logger = logging.getLogger("buildtools.tests.verbose")
    logger.setLevel(logging.DEBUG)
    assert is_verbose(logger) is True
    logger.setLevel(logging.INFO)
    assert is_verbose(logger) is False


def test_is_verbose_non_logger():
    assert is_verbose(object()) is False