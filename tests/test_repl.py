import importlib.util
import sys
from pathlib import Path
from textwrap import dedent
import uuid
import pytest


def _load_repl_module():
    """Dynamically load the top-level sandex_repl.py as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "sandex_repl.py"
    mod_name = f"sandex_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod


def _feed(monkeypatch, *lines):
    pending = iter(lines)

    def fake_input(prompt: str) -> str:
        try:
            return next(pending)
        except StopIteration:
            raise EOFError
    monkeypatch.setattr("builtins.input", fake_input)


def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, "exit")

    repl.main([])
    out = capsys.readouterr().out
    assert "Sandex REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out


def test_repl_prints_values(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, "1 + 2", "'a' + 1", "Math.max(4, 9)", "exit")

    repl.main([])
    out, err = capsys.readouterr()
    lines = out.splitlines()
    assert "3" in lines
    assert '"a1"' in lines
    assert "9" in lines
    assert err == ""


def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, "1 +", "nope(1)", "2", "exit")

    repl.main([])
    out, err = capsys.readouterr()
    assert "ParseError" in err
    assert "UnauthorizedCall" in err
    # The loop keeps going after an error.
    assert "2" in out.splitlines()


def test_repl_commands(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, ":let x = 2", "x * 3", ":bindings", ":ast 1+2*(3)", ":what", "exit")

    repl.main([])
    out, err = capsys.readouterr()
    lines = out.splitlines()
    assert "6" in lines
    assert '{"x": 2}' in lines
    assert "1 + 2 * 3" in lines
    assert "Unknown command :what" in err


def test_repl_ctrl_d_exits(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch)

    repl.main([])
    assert "Exiting." in capsys.readouterr().out


def test_expression_file(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "exprs.txt"
    script.write_text("1 + 1\n// comment\n\n'abc'.toUpperCase()\n", encoding="utf-8")

    repl.main([str(script)])
    out = capsys.readouterr().out
    assert out.splitlines() == ["2", '"ABC"']


def test_expression_file_with_error_exits_nonzero(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "bad.txt"
    script.write_text("1\nmissing + 1\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        repl.main([str(script)])
    assert exc.value.code == 1
    out, err = capsys.readouterr()
    assert out.splitlines() == ["1"]
    assert "PathNotFound" in err


def test_missing_expression_file(tmp_path, capsys):
    repl = _load_repl_module()
    with pytest.raises(SystemExit) as exc:
        repl.main([str(tmp_path / "nope.txt")])
    assert exc.value.code == 1
    assert "file not found" in capsys.readouterr().err


def test_whitelist_option(tmp_path, capsys):
    repl = _load_repl_module()
    config = tmp_path / "whitelist.yaml"
    config.write_text(dedent("""
        objects:
          site: {value: {name: demo}}
    """), encoding="utf-8")
    script = tmp_path / "exprs.txt"
    script.write_text("site.name.length + Math.abs(-1)\n", encoding="utf-8")

    repl.main(["--whitelist", str(config), str(script)])
    assert capsys.readouterr().out.splitlines() == ["5"]


def test_whitelist_option_needs_a_file(capsys):
    repl = _load_repl_module()
    with pytest.raises(SystemExit) as exc:
        repl.main(["--whitelist"])
    assert exc.value.code == 2
    assert "usage" in capsys.readouterr().err
