"""
Tests for the command-line entry point.
"""
import logging

from kitchen_bridge.__main__ import _parse_args, main


def test_parse_args():
    args = _parse_args(["add milk", "what can I cook?", "--log-level", "debug", "--persona", "quick"])
    assert args.messages == ["add milk", "what can I cook?"]
    assert args.log_level == "debug"
    assert args.persona == "quick"


def test_missing_credential_exits_nonzero(monkeypatch, tmp_path, capsys):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", list(root.handlers))
    monkeypatch.setattr(root, "level", root.level)

    assert main(["add milk"]) == 1

    captured = capsys.readouterr()
    assert "you> add milk" in captured.out
    assert "isn't configured" in captured.err
