"""Tests for the analyze CLI argument handling."""

from __future__ import annotations

import sys

import pytest

from scripts import analyze
from tactiview import config


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["analyze.py", *argv])
    with pytest.raises(SystemExit) as exc_info:
        analyze.main()
    return exc_info.value.code


class TestProfileChoice:
    def test_non_agentic_profile_rejected(self, monkeypatch, capsys):
        assert _run(monkeypatch, "frame.png", "--profile", "single_shot") == 2
        assert "invalid choice" in capsys.readouterr().err

    def test_agentic_profile_accepted(self, monkeypatch, capsys):
        monkeypatch.setattr(config, "GEMINI_API_KEY", "")
        # Parsing succeeds; the run then stops on the missing key.
        assert _run(monkeypatch, "frame.png", "--profile", "tactical") == 1
        assert "GEMINI_API_KEY" in capsys.readouterr().err


class TestMediaChecks:
    def test_video_rejected(self, monkeypatch, capsys, tmp_path):
        monkeypatch.setattr(config, "GEMINI_API_KEY", "fake")
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(b"\x00")
        assert _run(monkeypatch, str(clip)) == 1
        assert "video files are not supported" in capsys.readouterr().err

    def test_missing_file(self, monkeypatch, capsys, tmp_path):
        monkeypatch.setattr(config, "GEMINI_API_KEY", "fake")
        assert _run(monkeypatch, str(tmp_path / "nope.png")) == 1
        assert "is not a file" in capsys.readouterr().err
