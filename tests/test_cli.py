"""Smoke tests for the command-line entry point, run against the placeholder backend."""

from pathlib import Path

import pytest

from emojilens import __main__ as cli
from emojilens import config

WAVE = "\U0001f44b"


@pytest.fixture(autouse=True)
def _offline(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "STATE_DB", tmp_path / "state.sqlite3")
    monkeypatch.setattr(config, "INTERPRETER_ENABLED", False)
    monkeypatch.setattr(config, "MAX_USES", 3)


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return excinfo.value.code


class TestInterpretCommand:
    def test_placeholder_interpretation(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = _run(["interpret", f"Hey there! {WAVE} how are you?", "--platform", "SLACK"])
        out = capsys.readouterr().out
        assert code == 0
        assert "placeholder" in out
        assert "[[METRICS]]" not in out
        assert "Suggested response tones:" in out
        assert "2/3 free interpretations left today" in out

    def test_no_stream(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = _run(["interpret", f"Hey there! {WAVE} how are you?", "--no-stream"])
        assert code == 0
        assert "placeholder" in capsys.readouterr().out

    def test_validation_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = _run(["interpret", "no emoji in this one"])
        assert code == 1
        assert "Message must contain at least one emoji" in capsys.readouterr().err

    def test_quota_exhausted(self, capsys: pytest.CaptureFixture[str]) -> None:
        for _ in range(3):
            assert _run(["interpret", f"Hey there! {WAVE} how are you?"]) == 0
        capsys.readouterr()
        assert _run(["interpret", f"Hey there! {WAVE} how are you?"]) == 1
        assert "free interpretations for today" in capsys.readouterr().err


class TestQuotaCommand:
    def test_fresh(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["quota"]) == 0
        assert "3/3 free interpretations left today." in capsys.readouterr().out

    def test_clear(self, capsys: pytest.CaptureFixture[str]) -> None:
        _run(["interpret", f"Hey there! {WAVE} how are you?"])
        capsys.readouterr()
        assert _run(["quota", "--clear"]) == 0
        assert "3/3" in capsys.readouterr().out


def test_no_command_prints_help() -> None:
    assert _run([]) == 1
