import subprocess

import pytest

import subextract.ffmpeg_extractor as fx_mod
from subextract.errors import SubtitleExtractionError
from subextract.ffmpeg_extractor import FfmpegSubtitleExtractor, extension_for_codec, is_extractable
from subextract.models import MediaSource, MediaStream
from subextract.subtitle_artifacts import artifact_dir_for

SOURCE_ID = "047cd2da-002a-2bd0-eab6-aaaccbed3dd2"


def _sub(index, codec="subrip", language="spa", external=False):
    return MediaStream(type="Subtitle", index=index, language=language, codec=codec, is_external=external)


def _source(*streams, path="/media/show/s01e01.mkv"):
    return MediaSource(id=SOURCE_ID, path=path, streams=tuple(streams))


class FakeRun:
    def __init__(self, *, fail_with=None):
        self.fail_with = fail_with
        self.commands = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if self.fail_with is not None:
            raise self.fail_with
        with open(cmd[-1], "w", encoding="utf-8") as f:
            f.write("1\n00:00:01,000 --> 00:00:02,000\nhola\n")
        return subprocess.CompletedProcess(cmd, 0, "", "")


def test_codec_tables():
    assert extension_for_codec("SubRip") == "srt"
    assert extension_for_codec("webvtt") == "vtt"
    assert extension_for_codec("hdmv_pgs_subtitle") == "sup"
    assert extension_for_codec(None) == "sub"

    assert is_extractable(_sub(2, "ass")) is True
    assert is_extractable(_sub(2, "pgssub")) is False
    assert is_extractable(_sub(2, external=True)) is False


def test_resolver_uses_cache_layout(tmp_path):
    ex = FfmpegSubtitleExtractor(tmp_path)
    src = _source()

    assert ex.get_subtitle_file_path(_sub(3), src) == artifact_dir_for(SOURCE_ID, tmp_path) / "3.srt"
    assert ex.get_subtitle_file_path(_sub(4, "pgssub"), src).name == "4.sup"
    assert ex.get_subtitle_file_path(_sub(5, external=True), src) is None


def test_extracts_only_text_streams(tmp_path, monkeypatch):
    run = FakeRun()
    monkeypatch.setattr(fx_mod.subprocess, "run", run)
    ex = FfmpegSubtitleExtractor(tmp_path, ffmpeg_path="/usr/bin/ffmpeg")

    ex.extract_all_extractable_subtitles(
        _source(_sub(2), _sub(3, "pgssub"), _sub(4, "webvtt", "eng"), _sub(5, external=True))
    )

    assert len(run.commands) == 2
    cmd = run.commands[0]
    assert cmd[0] == "/usr/bin/ffmpeg"
    assert cmd[cmd.index("-map") + 1] == "0:2"
    assert cmd[cmd.index("-c:s") + 1] == "srt"
    assert run.commands[1][run.commands[1].index("-c:s") + 1] == "webvtt"

    leaf = artifact_dir_for(SOURCE_ID, tmp_path)
    assert sorted(p.name for p in leaf.iterdir()) == ["2.srt", "4.vtt"]
    assert (leaf / "2.srt").stat().st_size > 0


def test_existing_output_is_not_extracted_again(tmp_path, monkeypatch):
    run = FakeRun()
    monkeypatch.setattr(fx_mod.subprocess, "run", run)
    leaf = artifact_dir_for(SOURCE_ID, tmp_path)
    leaf.mkdir(parents=True)
    (leaf / "2.srt").write_text("previo")

    FfmpegSubtitleExtractor(tmp_path).extract_all_extractable_subtitles(_source(_sub(2)))

    assert run.commands == []
    assert (leaf / "2.srt").read_text() == "previo"


def test_ffmpeg_failure_leaves_no_partial_output(tmp_path, monkeypatch):
    err = subprocess.CalledProcessError(1, ["ffmpeg"], output="", stderr="Invalid data found")
    monkeypatch.setattr(fx_mod.subprocess, "run", FakeRun(fail_with=err))

    with pytest.raises(SubtitleExtractionError) as excinfo:
        FfmpegSubtitleExtractor(tmp_path).extract_all_extractable_subtitles(_source(_sub(2)))

    assert excinfo.value.stream_index == 2
    assert "Invalid data found" in excinfo.value.detail
    assert list(artifact_dir_for(SOURCE_ID, tmp_path).iterdir()) == []


def test_missing_binary_is_reported(tmp_path, monkeypatch):
    monkeypatch.setattr(fx_mod.subprocess, "run", FakeRun(fail_with=FileNotFoundError("ffmpeg")))

    with pytest.raises(SubtitleExtractionError) as excinfo:
        FfmpegSubtitleExtractor(tmp_path, ffmpeg_path="nope").extract_all_extractable_subtitles(_source(_sub(2)))

    assert "ffmpeg no encontrado" in excinfo.value.detail


def test_timeout_is_reported(tmp_path, monkeypatch):
    monkeypatch.setattr(fx_mod.subprocess, "run", FakeRun(fail_with=subprocess.TimeoutExpired(["ffmpeg"], 5)))

    with pytest.raises(SubtitleExtractionError):
        FfmpegSubtitleExtractor(tmp_path, timeout_seconds=5).extract_all_extractable_subtitles(_source(_sub(2)))

    assert list(artifact_dir_for(SOURCE_ID, tmp_path).iterdir()) == []


def test_source_without_path_raises(tmp_path):
    with pytest.raises(SubtitleExtractionError):
        FfmpegSubtitleExtractor(tmp_path).extract_all_extractable_subtitles(_source(_sub(2), path=""))


def test_source_without_text_streams_is_a_noop(tmp_path, monkeypatch):
    run = FakeRun()
    monkeypatch.setattr(fx_mod.subprocess, "run", run)

    FfmpegSubtitleExtractor(tmp_path).extract_all_extractable_subtitles(_source(_sub(3, "pgssub")))

    assert run.commands == []
    assert not artifact_dir_for(SOURCE_ID, tmp_path).exists()
