"""Tests for the command-line interface."""

import json

import pytest

from mediaprobe import __version__
from mediaprobe.cli import main


def test_text_output(mp4_file, capsys):
    assert main([mp4_file]) == 0
    out = capsys.readouterr().out
    assert out.startswith("General\n")
    assert "\nVideo\n" in out
    assert f"mediaprobe - {__version__}" in out.splitlines()[-1]


def test_json_output(mkv_file, ts_file, capsys):
    assert main(["--output", "json", mkv_file, ts_file]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [d["ref"] for d in data] == [mkv_file, ts_file]


def test_quiet_output(mp4_file, capsys):
    assert main(["--output", "quiet", mp4_file]) == 0
    assert capsys.readouterr().out.startswith("sample.mp4 | MPEG-4 | 10 s 0 ms | 1920x1080 |")


def test_output_format_from_env(mp4_file, capsys, monkeypatch):
    monkeypatch.setenv("MEDIAPROBE_OUTPUT_FORMAT", "quiet")
    assert main([mp4_file]) == 0
    assert capsys.readouterr().out.count("\n") == 1


def test_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "missing.mkv")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_partial_failure(mp4_file, tmp_path, capsys):
    missing = str(tmp_path / "missing.mkv")
    assert main(["--output", "quiet", mp4_file, missing]) == 1
    captured = capsys.readouterr()
    assert captured.out.startswith("sample.mp4")
    assert missing in captured.err


def test_output_file(mp4_file, tmp_path, capsys):
    target = tmp_path / "report.json"
    assert main(["--output", "json", "-o", str(target), mp4_file]) == 0
    assert capsys.readouterr().out == ""
    assert json.loads(target.read_text(encoding="utf-8"))[0]["ref"] == mp4_file


def test_invalid_jobs(mp4_file):
    with pytest.raises(SystemExit) as excinfo:
        main(["--jobs", "0", mp4_file])
    assert excinfo.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit):
        main(["--version"])
    assert __version__ in capsys.readouterr().out
