"""Tests for the analysis entry points."""

import os

import pytest

import builders
from mediaprobe import AnalyzeError, AnalyzeOptions, StreamKind, UnitError, analyze, analyze_file, get_file_info
from mediaprobe.analyze import expand_paths


def test_get_file_info(mp4_file):
    info = get_file_info(mp4_file)
    assert info.filename == "sample.mp4"
    assert info.extension == ".mp4"
    assert info.size_bytes == os.path.getsize(mp4_file)
    assert info.modified is not None


def test_analyze_file_not_found():
    """Test analyze_file raises FileNotFoundError for missing files."""
    with pytest.raises(FileNotFoundError):
        analyze_file("/nonexistent/file.mp4")


@pytest.mark.parametrize(
    "fixture, expected_format",
    [
        ("mp4_file", "MPEG-4"),
        ("mkv_file", "Matroska"),
        ("ts_file", "MPEG-TS"),
        ("ps_file", "MPEG-PS"),
    ],
)
def test_analyze_file_each_container(request, fixture, expected_format):
    path = request.getfixturevalue(fixture)
    report = analyze_file(path)
    assert report.ref == path
    assert report.general.get("Format") == expected_format
    assert report.general.get("Complete name") == path
    assert report.count(StreamKind.VIDEO) == 1
    assert report.created_by.startswith("mediaprobe - ")


def test_analyze_file_unknown_format(text_file):
    report = analyze_file(text_file)
    assert [s.kind for s in report.streams] == [StreamKind.GENERAL]
    assert report.general.get("File size") == "260 B"
    assert "Format" not in report.general


def test_mp4_report_fields(mp4_file):
    report = analyze_file(mp4_file, AnalyzeOptions(parse_speed=1.0))
    general = report.general
    assert general.get("Format profile") == "Base Media"
    assert general.get("Duration") == "10 s 0 ms"
    assert general.get("Writing application") == "Lavf58.29.100"
    video = report.streams_of(StreamKind.VIDEO)[0]
    assert video.get("Frame rate") == "25.000 FPS"
    assert video.get("Frame count") == "250"
    assert video.get("Bit rate") == "200 kb/s"
    assert video.names.index("Format") < video.names.index("Width")
    audio = report.streams_of(StreamKind.AUDIO)[0]
    assert audio.get("Channel layout") == "Stereo"
    assert audio.get("Sampling rate") == "48.0 kHz"


def test_batch_keeps_input_order(mp4_file, mkv_file, ts_file, ps_file):
    paths = [ps_file, mp4_file, ts_file, mkv_file]
    result = analyze(paths, AnalyzeOptions(max_workers=4))
    assert [r.ref for r in result.reports] == paths
    assert result.success_count == 4
    assert result.ok


def test_batch_reports_unit_errors(mp4_file, tmp_path):
    missing = str(tmp_path / "missing.mp4")
    result = analyze([missing, mp4_file])
    assert [r.ref for r in result.reports] == [mp4_file]
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], UnitError)
    assert result.errors[0].path == missing
    assert not result.ok


def test_batch_fails_when_nothing_analyzed(tmp_path):
    with pytest.raises(AnalyzeError) as excinfo:
        analyze([str(tmp_path / "a.mp4"), str(tmp_path / "b.mkv")])
    assert len(excinfo.value.errors) == 2


def test_empty_input():
    with pytest.raises(AnalyzeError):
        analyze([])


def test_directory_expands_sorted(write_file, tmp_path):
    write_file("media/b.mkv", builders.build_mkv())
    write_file("media/a.mp4", builders.build_mp4())
    (tmp_path / "media" / "nested").mkdir()
    directory = str(tmp_path / "media")
    assert expand_paths([directory]) == [os.path.join(directory, "a.mp4"), os.path.join(directory, "b.mkv")]
    result = analyze([directory])
    assert [r.general.get("Format") for r in result.reports] == ["MPEG-4", "Matroska"]


def test_file_limit(mp4_file, mkv_file, ts_file):
    result = analyze([mp4_file, mkv_file, ts_file], AnalyzeOptions(file_limit=2))
    assert [r.ref for r in result.reports] == [mp4_file, mkv_file]


def test_continuous_group_merged(write_file):
    paths = [write_file(f"disc{i}.vob", builders.build_ps()) for i in (1, 2, 3)]
    result = analyze([paths[0]], AnalyzeOptions(test_continuous_file_names=True))
    assert len(result.reports) == 1
    general = result.reports[0].general
    assert general.get("Count of files") == "3"
    assert general.get("Complete name (last)") == paths[2]
    assert general.get("Duration") == "2 s 880 ms"
    assert general.get("File size") == "{:.2f} KiB".format(sum(os.path.getsize(p) for p in paths) / 1024)


def test_continuous_names_off_by_default(write_file):
    paths = [write_file(f"disc{i}.vob", builders.build_ps()) for i in (1, 2)]
    assert len(analyze(paths).reports) == 2


def test_truncated_file_still_reports(write_file):
    path = write_file("cut.mp4", builders.build_mp4()[:-2000])
    report = analyze_file(path)
    assert report.general.get("Is truncated") == "Yes"
    assert report.count(StreamKind.AUDIO) == 1
