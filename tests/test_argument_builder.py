from pathlib import Path

import pytest

from encode_all.config.encoding import TWO_PASS_CRF_ADVISORY
from encode_all.domain.request import EncodingRequest
from encode_all.services.argument_builder import (
    build_encoding_plan,
    build_pass_args,
    build_single_pass_args,
    passlog_prefix,
)


def make(**overrides):
    fields = {
        "input_path": Path("/videos/in.mp4"),
        "output_path": Path("/videos/out/in.mkv"),
        "video_codec": "libx265",
        "audio_codec": "aac",
    }
    fields.update(overrides)
    return EncodingRequest(**fields)


def test_single_pass_with_audio_subtitles_and_mapping():
    request = make(
        audio_channels="stereo",
        audio_bitrate=192,
        volume_db=2,
        crf=20,
        preset="slow",
        threads=4,
        track_selection="all_audio",
        subtitle_mode="copy",
    )

    assert build_single_pass_args(request) == [
        "-y", "-i", "/videos/in.mp4", "-map_metadata", "0",
        "-c:v", "libx265", "-crf", "20", "-preset", "slow",
        "-c:a", "aac", "-b:a", "192k", "-ac", "2", "-filter:a", "volume=2dB",
        "-c:s", "copy",
        "-threads", "4",
        "-map", "0:v:0", "-map", "0:a", "-map", "0:s?",
        "/videos/out/in.mkv",
    ]


def test_defaults_produce_minimal_command():
    plan = build_encoding_plan(make())

    assert not plan.is_two_pass
    assert plan.advisories == []
    assert plan.passes == [[
        "-y", "-i", "/videos/in.mp4", "-map_metadata", "0",
        "-c:v", "libx265", "-crf", "23", "-preset", "medium",
        "-c:a", "aac", "-b:a", "128k",
        "-sn",
        "/videos/out/in.mkv",
    ]]


def test_video_passthrough_omits_quality_and_preset():
    args = build_single_pass_args(make(video_codec="copy", crf=18, preset="slow"))

    index = args.index("-c:v")
    assert args[index + 1] == "copy"
    assert "-crf" not in args
    assert "-preset" not in args
    assert "-b:v" not in args


def test_audio_passthrough_omits_audio_options():
    args = build_single_pass_args(make(audio_codec="copy", audio_channels="5.1", volume_db=3))

    assert args[args.index("-c:a") + 1] == "copy"
    for flag in ("-b:a", "-ac", "-filter:a"):
        assert flag not in args


def test_bitrate_mode_uses_bitrate_instead_of_quality():
    args = build_single_pass_args(make(rate_control_mode="bitrate", video_bitrate=4000))

    assert args[args.index("-b:v") + 1] == "4000k"
    assert "-crf" not in args
    assert "-cq" not in args


def test_hardware_encoder_uses_cq():
    args = build_single_pass_args(make(video_codec="hevc_nvenc", crf=28))

    assert args[args.index("-cq") + 1] == "28"
    assert "-crf" not in args


@pytest.mark.parametrize("layout, count", [("mono", "1"), ("stereo", "2"), ("5.1", "6")])
def test_channel_layouts(layout, count):
    args = build_single_pass_args(make(audio_channels=layout))
    assert args[args.index("-ac") + 1] == count


def test_unknown_channel_layout_emits_nothing():
    assert "-ac" not in build_single_pass_args(make(audio_channels="7.1"))


def test_zero_audio_bitrate_and_volume_are_omitted():
    args = build_single_pass_args(make(audio_bitrate=0, volume_db=0))
    assert "-b:a" not in args
    assert "-filter:a" not in args


def test_fractional_volume_is_kept():
    args = build_single_pass_args(make(volume_db=-1.5))
    assert args[args.index("-filter:a") + 1] == "volume=-1.5dB"


def test_track_selection_all_maps_everything():
    args = build_single_pass_args(make(track_selection="all", subtitle_mode="copy"))
    assert args.count("-map") == 1
    assert args[args.index("-map") + 1] == "0"


def test_auto_tracks_map_subtitles_only_when_copied():
    assert "-map" not in build_single_pass_args(make(subtitle_mode="none"))

    args = build_single_pass_args(make(subtitle_mode="copy"))
    assert args[-3:] == ["-map", "0:s?", "/videos/out/in.mkv"]


def test_subtitle_auto_leaves_selection_to_ffmpeg():
    args = build_single_pass_args(make(subtitle_mode="auto"))
    assert "-sn" not in args
    assert "-c:s" not in args


def test_two_pass_plan_structure():
    request = make(rate_control_mode="bitrate", video_bitrate=3000, two_pass=True, threads=2)
    plan = build_encoding_plan(request, null_sink="/dev/null")
    prefix = str(passlog_prefix(request.output_path))

    assert plan.is_two_pass
    assert plan.advisories == []
    first, second = plan.passes

    assert first[:5] == ["-y", "-i", "/videos/in.mp4", "-map_metadata", "0"]
    assert "-c:a" not in first
    assert first[-11:] == [
        "-an", "-sn", "-threads", "2",
        "-pass", "1", "-passlogfile", prefix, "-f", "null", "/dev/null",
    ]

    assert second[second.index("-b:v") + 1] == "3000k"
    assert "-c:a" in second
    assert second[-5:] == ["-pass", "2", "-passlogfile", prefix, "/videos/out/in.mkv"]


def test_two_pass_is_ignored_for_video_copy():
    plan = build_encoding_plan(make(video_codec="copy", two_pass=True))

    assert not plan.is_two_pass
    assert plan.passlog_prefix is None
    assert "-pass" not in plan.passes[0]


def test_two_pass_with_crf_adds_advisory():
    plan = build_encoding_plan(make(two_pass=True))

    assert plan.is_two_pass
    assert plan.advisories == [TWO_PASS_CRF_ADVISORY]


def test_passlog_prefix_is_deterministic_and_beside_output():
    a = passlog_prefix(Path("/videos/out/movie.mkv"))
    b = passlog_prefix(Path("/videos/out/movie.mkv"))
    c = passlog_prefix(Path("/videos/out/other.mkv"))

    assert a == b
    assert a != c
    assert a.parent == Path("/videos/out")
    assert a.name.startswith("ffmpeg2pass-")


def test_invalid_pass_number():
    with pytest.raises(ValueError):
        build_pass_args(make(), 3, Path("/tmp/x"))
