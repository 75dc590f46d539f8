from marmoset import Lexer, SourceLocation, Token, TokenKind


def kinds(source):
    return [token.kind for token in Lexer(source).tokens()]


def test_operators_and_delimiters():
    tokens = list(Lexer("=+-!*/<>==!=,;:(){}[]").tokens())
    assert [t.kind for t in tokens] == [
        TokenKind.ASSIGN,
        TokenKind.PLUS,
        TokenKind.MINUS,
        TokenKind.BANG,
        TokenKind.ASTERISK,
        TokenKind.SLASH,
        TokenKind.LT,
        TokenKind.GT,
        TokenKind.EQ,
        TokenKind.NOT_EQ,
        TokenKind.COMMA,
        TokenKind.SEMICOLON,
        TokenKind.COLON,
        TokenKind.LPAREN,
        TokenKind.RPAREN,
        TokenKind.LBRACE,
        TokenKind.RBRACE,
        TokenKind.LBRACKET,
        TokenKind.RBRACKET,
        TokenKind.EOF,
    ]
    assert tokens[8].literal == "=="
    assert tokens[9].literal == "!="


def test_let_statement():
    tokens = list(Lexer("let five = 5;").tokens())
    assert [(t.kind, t.literal) for t in tokens] == [
        (TokenKind.LET, "let"),
        (TokenKind.IDENTIFIER, "five"),
        (TokenKind.ASSIGN, "="),
        (TokenKind.INT, "5"),
        (TokenKind.SEMICOLON, ";"),
        (TokenKind.EOF, ""),
    ]


def test_keywords():
    assert kinds("fn let if else return true false") == [
        TokenKind.FUNCTION,
        TokenKind.LET,
        TokenKind.IF,
        TokenKind.ELSE,
        TokenKind.RETURN,
        TokenKind.TRUE,
        TokenKind.FALSE,
        TokenKind.EOF,
    ]
    assert Token.lookup_identifier("fn") == TokenKind.FUNCTION
    assert Token.lookup_identifier("function") == TokenKind.IDENTIFIER


def test_identifiers_may_contain_digits_and_underscores():
    tokens = list(Lexer("foo_bar x1 _").tokens())
    assert (tokens[0].kind, tokens[0].literal) == (TokenKind.IDENTIFIER, "foo_bar")
    assert (tokens[1].kind, tokens[1].literal) == (TokenKind.IDENTIFIER, "x1")
    assert (tokens[2].kind, tokens[2].literal) == (TokenKind.ILLEGAL, "_")


def test_strings():
    tokens = list(Lexer('"foobar" "foo bar" ""').tokens())
    assert [(t.kind, t.literal) for t in tokens] == [
        (TokenKind.STRING, "foobar"),
        (TokenKind.STRING, "foo bar"),
        (TokenKind.STRING, ""),
        (TokenKind.EOF, ""),
    ]


def test_unterminated_string_ends_input():
    assert kinds('let x = "abc') == [
        TokenKind.LET,
        TokenKind.IDENTIFIER,
        TokenKind.ASSIGN,
        TokenKind.EOF,
    ]


def test_illegal_characters():
    tokens = list(Lexer("@ 1 $").tokens())
    assert [(t.kind, t.literal) for t in tokens] == [
        (TokenKind.ILLEGAL, "@"),
        (TokenKind.INT, "1"),
        (TokenKind.ILLEGAL, "$"),
        (TokenKind.EOF, ""),
    ]


def test_eof_is_repeated():
    lexer = Lexer("")
    assert lexer.next_token().kind == TokenKind.EOF
    assert lexer.next_token().kind == TokenKind.EOF


def test_source_locations_track_lines():
    lexer = Lexer("let\n\nx\r\n=\t1", SourceLocation("test.mar", 1))
    tokens = list(lexer.tokens())
    assert [t.location.line for t in tokens] == [1, 3, 4, 4, 4]
    assert str(tokens[1].location) == "test.mar, line 3"


def test_tokens_without_location():
    assert all(t.location is None for t in Lexer("let x = 1;").tokens())
