"""Tests for report assembly."""

from mediaprobe.assembler import AppInfo, ReportAssembler, merge_infos, sort_fields
from mediaprobe.grouping import FileGroup
from mediaprobe.models import Field, StreamKind
from mediaprobe.parsers.base import ContainerInfo, TrackInfo
from mediaprobe.sniff import ContainerFormat


def make_info(duration=10.0, stream_size=500_000) -> ContainerInfo:
    return ContainerInfo(
        format=ContainerFormat.MATROSKA,
        format_name="Matroska",
        duration=duration,
        tracks=[
            TrackInfo(kind=StreamKind.VIDEO, id="1", format="AVC", width=1920, height=1080, stream_size=stream_size),
            TrackInfo(kind=StreamKind.AUDIO, id="2", format="AAC", channels=2, language="en"),
            TrackInfo(kind=StreamKind.AUDIO, id="3", format="AC-3", channels=6, language="de"),
        ],
    )


def assemble(info, paths=("/media/movie.mkv",), sizes=(1_000_000,)):
    return ReportAssembler(AppInfo(version="1.2.3")).assemble(FileGroup(list(paths), list(sizes)), info)


class TestReportAssembler:
    """Test ReportAssembler."""

    def test_general_first_and_ordinals(self):
        report = assemble(make_info())
        assert [s.kind for s in report.streams] == [
            StreamKind.GENERAL,
            StreamKind.VIDEO,
            StreamKind.AUDIO,
            StreamKind.AUDIO,
        ]
        audios = report.streams_of(StreamKind.AUDIO)
        assert [a.index for a in audios] == [1, 2]
        assert report.title(audios[1]) == "Audio #2"
        assert report.title(report.streams_of(StreamKind.VIDEO)[0]) == "Video"

    def test_overall_bit_rate_derived(self):
        general = assemble(make_info()).general
        assert general.get("Overall bit rate") == "800 kb/s"
        assert general.get("File size") == "976.56 KiB"
        assert general.get("Duration") == "10 s 0 ms"

    def test_general_field_order(self):
        general = assemble(make_info()).general
        assert general.names == ["Complete name", "Format", "File size", "Duration", "Overall bit rate"]

    def test_stream_fields(self):
        report = assemble(make_info())
        video = report.streams_of(StreamKind.VIDEO)[0]
        assert video.get("Width") == "1920 pixels"
        assert video.get("Stream size") == "488.28 KiB (50%)"
        audio = report.streams_of(StreamKind.AUDIO)[1]
        assert audio.get("Channel(s)") == "6 channels"
        assert audio.get("Channel layout") == "5.1"
        assert audio.get("Language") == "German"

    def test_unknown_format(self):
        report = assemble(None, paths=("/tmp/notes.txt",), sizes=(260,))
        assert len(report.streams) == 1
        assert report.general.names == ["Complete name", "File size"]
        assert "Format" not in report.general

    def test_truncated_flag(self):
        info = make_info()
        info.truncated = True
        assert assemble(info).general.get("Is truncated") == "Yes"

    def test_extra_fields_sorted_after_ranked(self):
        info = make_info()
        info.tracks.append(TrackInfo(kind=StreamKind.MENU, extra={"00:05:00.000": "B", "00:00:00.000": "A"}))
        menu = assemble(info).streams_of(StreamKind.MENU)[0]
        assert menu.names == ["00:00:00.000", "00:05:00.000"]

    def test_created_by(self):
        assert assemble(make_info()).created_by == "mediaprobe - 1.2.3"

    def test_group_fields(self):
        report = assemble(make_info(), paths=("/v/disc1.vob", "/v/disc2.vob"), sizes=(100, 200))
        general = report.general
        assert general.get("Complete name") == "/v/disc1.vob"
        assert general.get("Complete name (last)") == "/v/disc2.vob"
        assert general.get("Count of files") == "2"
        assert general.get("File size") == "300 B"


def test_sort_fields_is_stable_and_alphabetical_for_unranked():
    fields = [
        Field(name="Zeta", value="z", rank=1000),
        Field(name="Format", value="f", rank=1),
        Field(name="Alpha", value="a", rank=1000),
        Field(name="ID", value="i", rank=0),
    ]
    assert [f.name for f in sort_fields(fields)] == ["ID", "Format", "Alpha", "Zeta"]


def test_merge_infos_sums_durations_and_sizes():
    first, second = make_info(10.0, 1000), make_info(5.0, 500)
    first.tracks[0].duration = 10.0
    second.tracks[0].duration = 5.0
    merged = merge_infos([first, second])
    assert merged.duration == 15.0
    video = merged.tracks_of(StreamKind.VIDEO)[0]
    assert video.stream_size == 1500
    assert video.bit_rate == 1500 * 8 / 15.0


def test_merge_infos_matches_tracks_by_position():
    first = make_info()
    second = make_info()
    for track in second.tracks:
        track.id = ""
    second.tracks[0].duration = 4.0
    first.tracks[0].duration = 6.0
    merged = merge_infos([first, second])
    assert merged.tracks[0].duration == 10.0
    assert first.tracks[0].duration == 6.0
