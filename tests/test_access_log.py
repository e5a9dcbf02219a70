import os

from hostpanel.services.access_log import AccessLogTailer


def _line(path):
    return f'203.0.113.7 - - [19/Oct/2026:10:00:00 +0000] "GET {path} HTTP/1.1" 200 612\n'


def test_first_poll_starts_at_end_of_existing_log(tmp_path, notifier, sink):
    log = tmp_path / "access.log"
    log.write_text(_line("/old"))
    tailer = AccessLogTailer(str(log), notifier)

    assert tailer.poll() is None
    with log.open("a") as handle:
        handle.write(_line("/new"))

    assert tailer.poll() == _line("/new")
    assert tailer.poll() is None
    assert [event["data"] for event in sink.of_type("nginx_access")] == [_line("/new")]


def test_truncated_log_is_read_from_the_start(tmp_path, notifier):
    log = tmp_path / "access.log"
    log.write_text(_line("/a") + _line("/b"))
    tailer = AccessLogTailer(str(log), notifier)
    tailer.poll()

    log.write_text(_line("/c"))

    assert tailer.poll() == _line("/c")


def test_rotated_log_is_followed(tmp_path, notifier, sink):
    log = tmp_path / "access.log"
    log.write_text(_line("/before"))
    tailer = AccessLogTailer(str(log), notifier)
    tailer.poll()

    os.rename(log, tmp_path / "access.log.1")
    assert tailer.poll() is None
    log.write_text(_line("/after"))

    assert tailer.poll() == _line("/after")
    assert len(sink.of_type("nginx_access")) == 1


def test_missing_log_publishes_nothing(tmp_path, notifier, sink):
    tailer = AccessLogTailer(str(tmp_path / "absent.log"), notifier)

    assert tailer.poll() is None
    assert sink.events == []


def test_large_appends_are_sent_in_bounded_chunks(tmp_path, notifier, sink):
    log = tmp_path / "access.log"
    log.write_text("")
    tailer = AccessLogTailer(str(log), notifier, max_chunk_bytes=10)
    tailer.poll()
    log.write_text("x" * 25)

    chunks = [tailer.poll(), tailer.poll(), tailer.poll(), tailer.poll()]

    assert chunks == ["x" * 10, "x" * 10, "x" * 5, None]
