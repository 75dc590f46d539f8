from marmoset import (
    FALSE,
    NULL,
    TRUE,
    Array,
    Boolean,
    Environment,
    Error,
    Hash,
    HashKey,
    HashPair,
    Integer,
    Null,
    String,
    fnv1_64,
    wrap_int64,
)


def test_string_hash_keys():
    hello1 = String("Hello World")
    hello2 = String("Hello World")
    diff1 = String("My name is johnny")
    diff2 = String("My name is johnny")
    assert hello1 is not hello2
    assert hello1.hash_key() == hello2.hash_key()
    assert diff1.hash_key() == diff2.hash_key()
    assert hello1.hash_key() != diff1.hash_key()


def test_fnv1_digest():
    assert fnv1_64(b"") == 0xCBF29CE484222325
    assert fnv1_64(b"a") == 0xAF63BD4C8601B7BE
    assert String("a").hash_key() == HashKey("STRING", 0xAF63BD4C8601B7BE)


def test_integer_and_boolean_hash_keys():
    assert Integer(1).hash_key() == HashKey("INTEGER", 1)
    assert Integer(-1).hash_key() == HashKey("INTEGER", (1 << 64) - 1)
    assert TRUE.hash_key() == HashKey("BOOLEAN", 1)
    assert FALSE.hash_key() == HashKey("BOOLEAN", 0)
    assert Integer(1).hash_key() != TRUE.hash_key()


def test_values_compare_by_identity():
    assert Integer(1) != Integer(1)
    assert String("a") != String("a")
    x = Integer(1)
    assert x == x


def test_singletons():
    assert Boolean.new(True) is TRUE
    assert Boolean.new(False) is FALSE
    assert Null.new() is NULL


def test_typenames():
    assert Integer(0).typename() == "INTEGER"
    assert TRUE.typename() == "BOOLEAN"
    assert NULL.typename() == "NULL"
    assert String("").typename() == "STRING"
    assert Array().typename() == "ARRAY"
    assert Hash().typename() == "HASH"
    assert Error(None, "x").typename() == "ERROR"


def test_inspect():
    assert str(Integer(-5)) == "-5"
    assert str(TRUE) == "true"
    assert str(NULL) == "null"
    assert str(String("hi")) == '"hi"'
    assert str(Array([Integer(1), String("a")])) == '[1, "a"]'
    assert str(Array()) == "[]"
    key = String("k")
    assert str(Hash({key.hash_key(): HashPair(key, Integer(2))})) == '{"k": 2}'
    assert str(Error(None, "boom")) == "ERROR: boom"


def test_wrap_int64():
    assert wrap_int64(1 << 63) == -(1 << 63)
    assert wrap_int64(-(1 << 63) - 1) == (1 << 63) - 1
    assert wrap_int64(42) == 42


def test_environment_lookup_walks_outer_chain():
    outer = Environment()
    inner = Environment(outer)
    outer.let("a", Integer(1))
    inner.let("b", Integer(2))
    assert inner.get("a").data == 1
    assert inner.get("b").data == 2
    assert outer.get("b") is None
    inner.let("a", Integer(3))
    assert inner.get("a").data == 3
    assert outer.get("a").data == 1
