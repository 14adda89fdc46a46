"""Pytest configuration and fixtures."""

import pytest

import builders
from mediaprobe import config


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep user config files and MEDIAPROBE_* variables out of the tests."""
    monkeypatch.setattr(config, "CONFIG_LOCATIONS", [])
    for key in ("PARSE_SPEED", "TEST_CONTINUOUS_FILE_NAMES", "MAX_WORKERS", "FILE_LIMIT", "OUTPUT_FORMAT"):
        monkeypatch.delenv(f"MEDIAPROBE_{key}", raising=False)
    config.reset_config()
    yield
    config.reset_config()


@pytest.fixture
def write_file(tmp_path):
    """Write bytes to a file under tmp_path and return its path as str."""

    def _write(name: str, data: bytes) -> str:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)

    return _write


@pytest.fixture
def mp4_file(write_file) -> str:
    return write_file("sample.mp4", builders.build_mp4())


@pytest.fixture
def mkv_file(write_file) -> str:
    return write_file("sample.mkv", builders.build_mkv())


@pytest.fixture
def ts_file(write_file) -> str:
    return write_file("sample.ts", builders.build_ts())


@pytest.fixture
def ps_file(write_file) -> str:
    return write_file("sample.mpg", builders.build_ps())


@pytest.fixture
def text_file(write_file) -> str:
    return write_file("notes.txt", b"just some text, not media\n" * 10)
