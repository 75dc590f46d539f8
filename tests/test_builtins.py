import pytest

from marmoset import BASE_ENVIRONMENT, NULL, Environment, Error, eval_source


def run(source):
    return eval_source(source, Environment(BASE_ENVIRONMENT))


@pytest.mark.parametrize(
    "source, expected",
    [
        ('len("")', "0"),
        ('len("four")', "4"),
        ('len("hello world")', "11"),
        ('len("héllo")', "5"),
        ("len([1, 2, 3])", "3"),
        ("len([])", "0"),
        ("first([1, 2, 3])", "1"),
        ("first([])", "null"),
        ("last([1, 2, 3])", "3"),
        ("last([])", "null"),
        ("tail([1, 2, 3])", "[2, 3]"),
        ("tail([])", "null"),
        ("push([], 1)", "[1]"),
        ("push([1], [2])", "[1, [2]]"),
        ("puts()", "null"),
    ],
)
def test_builtin_results(source, expected):
    assert str(run(source)) == expected


@pytest.mark.parametrize(
    "source, expected",
    [
        ("len(1)", "argument to `len` not supported, got INTEGER"),
        ('len("one", "two")', "wrong number of arguments. got=2, want=1"),
        ("len()", "wrong number of arguments. got=0, want=1"),
        ("first(1)", "argument to `first` must be ARRAY, got INTEGER"),
        ('last("abc")', "argument to `last` must be ARRAY, got STRING"),
        ("tail({})", "argument to `tail` must be ARRAY, got HASH"),
        ("push(1, 1)", "first argument to `push` must be ARRAY, got INTEGER"),
        ("push([])", "wrong number of arguments. got=1, want=2"),
    ],
)
def test_builtin_errors(source, expected):
    result = run(source)
    assert isinstance(result, Error)
    assert result.message == expected


def test_push_does_not_modify_argument():
    env = Environment(BASE_ENVIRONMENT)
    eval_source("let a = [1]; let b = push(a, 2);", env)
    assert str(env.get("a")) == "[1]"
    assert str(env.get("b")) == "[1, 2]"


def test_tail_shares_elements():
    env = Environment(BASE_ENVIRONMENT)
    eval_source('let s = "x"; let a = [1, s]; let t = tail(a);', env)
    assert env.get("t").elements[0] is env.get("s")


def test_puts(capsys):
    result = run('puts("hello", 1, [true], "a" + "b")')
    assert result is NULL
    assert capsys.readouterr().out == "hello\n1\n[true]\nab\n"


def test_builtin_inspect():
    assert str(run("len")) == "builtin function"
    assert run("len").typename() == "BUILTIN"


def test_builtin_error_records_call_trace():
    result = run("first(1)")
    assert isinstance(result, Error)
    assert len(result.trace) == 1
    assert result.trace[0].function is BASE_ENVIRONMENT.get("first")
