import sys

import pytest

from marmoset import BASE_ENVIRONMENT, Environment, Repl, main


@pytest.fixture
def repl():
    return Repl(Environment(BASE_ENVIRONMENT))


def test_prints_results(repl, capsys):
    assert repl.runsource("let x = 5;") is False
    assert repl.runsource("x * 2") is False
    assert repl.runsource('"a" + "b"') is False
    assert capsys.readouterr().out == '10\n"ab"\n'


def test_bindings_persist_between_inputs(repl, capsys):
    repl.runsource("let add = fn(a, b) { a + b };")
    repl.runsource("add(1, 2)")
    assert capsys.readouterr().out == "3\n"


def test_prints_evaluation_errors(repl, capsys):
    repl.runsource("5 + true")
    assert "ERROR: type mismatch: INTEGER + BOOLEAN" in capsys.readouterr().out


def test_prints_each_parse_error_indented(repl, capsys):
    assert repl.runsource("let = 1; let 5") is False
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 3
    assert "\tExpected next token to be IDENTIFIER, got ASSIGN" in lines[0]
    assert "\tNo prefix parse function for ASSIGN" in lines[1]
    assert "\tExpected next token to be IDENTIFIER, got INT" in lines[2]


def test_incomplete_input_requests_more(repl, capsys):
    assert repl.runsource("let f = fn(x) {") is True
    assert repl.runsource("let f = fn(x) {\n") is False
    assert "Expected next token to be RBRACE, got EOF" in capsys.readouterr().out


def test_multiline_input_through_push(repl, capsys):
    assert repl.push("let f = fn(x) {") is True
    assert repl.push("  x * 3") is True
    assert repl.push("};") is False
    assert repl.push("f(3)") is False
    assert capsys.readouterr().out == "9\n"


def test_empty_input_prints_nothing(repl, capsys):
    assert repl.runsource("") is False
    assert capsys.readouterr().out == ""


def test_main_evaluates_source(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["marmoset", "-e", "let x = [1, 2]; push(x, 3)"])
    main()
    assert capsys.readouterr().out == "[1, 2, 3]\n"


def test_main_reports_parse_errors(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["marmoset", "--eval", "let = 1"])
    with pytest.raises(SystemExit) as e:
        main()
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert "[<eval>, line 1] Expected next token to be IDENTIFIER, got ASSIGN" in err


def test_main_reports_evaluation_errors(monkeypatch, capsys):
    source = "let f = fn(x) {\nx + true\n};\nf(1)"
    monkeypatch.setattr(sys, "argv", ["marmoset", "-e", source])
    with pytest.raises(SystemExit) as e:
        main()
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert "[<eval>, line 2] error: type mismatch: INTEGER + BOOLEAN" in err
    assert "...within fn(x) { (x + true); } called from <eval>, line 4" in err


def test_very_long_integer_literal_does_not_end_session(repl, capsys):
    assert repl.runsource("1" * 5000) is False
    assert "as an integer" in capsys.readouterr().out
    repl.runsource("1 + 1")
    assert capsys.readouterr().out == "2\n"
