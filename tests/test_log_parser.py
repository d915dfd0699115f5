import pytest

from encode_all.services.log_parser import FfmpegLogParser
from encode_all.utils.format_utils import parse_timestamp


def test_parse_timestamp():
    assert parse_timestamp("01:02:03.45") == pytest.approx(3723.45)
    assert parse_timestamp("100:00:00.00") == 360000
    with pytest.raises(ValueError):
        parse_timestamp("1:02:03")


def test_duration_then_progress():
    parser = FfmpegLogParser()

    assert parser.feed("  Duration: 01:02:03.45, start: 0.000000, bitrate: 900 kb/s\n") is None
    assert parser.duration == pytest.approx(3723.45)
    assert parser.percent is None

    fraction = parser.feed("frame= 1000 fps=30 time=00:31:01.72 bitrate=800kbits/s\r")
    assert fraction == pytest.approx(1861.72 / 3723.45)
    assert parser.percent == 50


def test_progress_before_duration_is_not_reported():
    parser = FfmpegLogParser()

    assert parser.feed("frame=1 time=00:00:05.00 bitrate=1k\r") is None
    assert parser.position == 5.0
    assert parser.fraction is None


def test_tokens_split_across_chunks():
    parser = FfmpegLogParser()
    text = "  Duration: 00:01:40.00, start: 0.0\nframe=  10 time=00:00:50.00 bitrate=1k\r"
    pieces = [text[i:i + 7] for i in range(0, len(text), 7)]

    reported = [f for f in (parser.feed(p) for p in pieces) if f is not None]

    assert parser.duration == 100.0
    assert reported == [0.5]


def test_duration_without_trailing_newline_resolves_immediately():
    parser = FfmpegLogParser()
    parser.feed("Duration: 00:00:10.00")
    assert parser.duration == 10.0


def test_multiple_status_updates_in_one_chunk():
    parser = FfmpegLogParser()
    parser.feed("Duration: 00:01:40.00, start\n")

    fraction = parser.feed("time=00:00:10.00 x\rtime=00:00:20.00 x\rtime=00:00:30.00 x\r")

    assert fraction == pytest.approx(0.3)


def test_progress_is_capped_and_never_decreases():
    parser = FfmpegLogParser()
    parser.feed("Duration: 00:00:10.00, start\n")

    assert parser.feed("time=00:00:06.00 \r") == pytest.approx(0.6)
    assert parser.feed("time=00:00:04.00 \r") == pytest.approx(0.6)
    assert parser.feed("time=00:00:12.00 \r") == 1.0
    assert parser.percent == 100


def test_duration_is_taken_once():
    parser = FfmpegLogParser()
    parser.feed("Duration: 00:00:10.00, start\n")
    parser.feed("Duration: 00:05:00.00, start\n")
    assert parser.duration == 10.0


def test_same_status_line_is_not_counted_twice():
    parser = FfmpegLogParser()
    parser.feed("Duration: 00:00:10.00, start\n")
    assert parser.feed("time=00:00:05.00 bitrate=1k\r") == pytest.approx(0.5)
    # The retained tail still contains the previous token.
    assert parser.feed("speed=1x") is None
