"""
SQL text scanning for placeholder handling.

The engine capability needs to know how many parameter slots a statement
declares before anything is bound, and callers may write either `?` or `%s`
placeholders. Both are answered by a single tokenization pass:

    SQL → Tokenize → (count slots | rewrite %s as ?)

Literals, quoted identifiers and comments are recognized so that a `?`
inside them is never taken for a placeholder.

Main entry points:
- `count_placeholders()` - Number of parameter slots, numbered the way SQLite does
- `standardize_placeholders()` - Convert %s to ?
- `named_placeholders()` - Named placeholders (:name, @name, $name) in the SQL
- `is_explain()` - Check if SQL is already an EXPLAIN statement
"""
import re
from dataclasses import dataclass
from enum import Enum, auto

__all__ = [
    'TokenType',
    'Token',
    'tokenize_sql',
    'count_placeholders',
    'named_placeholders',
    'standardize_placeholders',
    'is_explain',
]


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENTIFIER = auto()
    COMMENT = auto()
    POSITIONAL_PH = auto()      # ? or %s
    NUMBERED_PH = auto()        # ?NNN
    NAMED_PH = auto()           # :name, @name, $name


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*')
    |(?P<ident>"(?:[^"]|"")*"|`(?:[^`]|``)*`|\[[^\]]*\])
    |(?P<comment>--[^\n]*|/\*.*?(?:\*/|\Z))
    |(?P<numbered>\?\d+)
    |(?P<qmark>\?)
    |(?P<percent_s>%s)
    |(?P<named>[:@$][A-Za-z_][A-Za-z0-9_]*)
""", re.VERBOSE | re.DOTALL)

_GROUP_TYPES = {
    'string': TokenType.STRING_LITERAL,
    'ident': TokenType.QUOTED_IDENTIFIER,
    'comment': TokenType.COMMENT,
    'numbered': TokenType.NUMBERED_PH,
    'qmark': TokenType.POSITIONAL_PH,
    'percent_s': TokenType.POSITIONAL_PH,
    'named': TokenType.NAMED_PH,
}

_EXPLAIN = re.compile(r'\s*explain\b', re.IGNORECASE)


def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(
                type=TokenType.SQL_TEXT,
                text=sql[last_end:start],
                start=last_end,
                end=start
            ))

        tokens.append(Token(
            type=_GROUP_TYPES[match.lastgroup],
            text=match.group(0),
            start=start,
            end=end
        ))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(
            type=TokenType.SQL_TEXT,
            text=sql[last_end:],
            start=last_end,
            end=len(sql)
        ))

    return tokens


def count_placeholders(sql: str) -> int:
    """Count the parameter slots a statement declares.

    Slots are numbered like SQLite numbers them: a bare `?` takes the next
    index after the largest seen so far, `?NNN` takes index NNN, and a named
    parameter takes the next index on first use and reuses it afterwards.
    The count is the largest index.

    Parameters
        sql: SQL query string

    Returns
        Number of parameter slots
    """
    largest = 0
    named: dict[str, int] = {}

    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            largest += 1
        elif token.type == TokenType.NUMBERED_PH:
            largest = max(largest, int(token.text[1:]))
        elif token.type == TokenType.NAMED_PH:
            if token.text not in named:
                largest += 1
                named[token.text] = largest

    return largest


def named_placeholders(sql: str) -> list[str]:
    """Named placeholders in `sql`, in order of first use.

    Literals, quoted identifiers and comments are skipped.
    """
    names = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.NAMED_PH and token.text not in names:
            names.append(token.text)
    return names


def standardize_placeholders(sql: str) -> str:
    """Convert %s placeholders to the ? form the engine understands.

    Literals, quoted identifiers and comments are left untouched.

    Parameters
        sql: SQL query string

    Returns
        SQL with every %s placeholder rewritten as ?
    """
    if '%s' not in sql:
        return sql

    return ''.join(
        '?' if token.type == TokenType.POSITIONAL_PH else token.text
        for token in tokenize_sql(sql)
    )


def is_explain(sql: str) -> bool:
    """Check if SQL is already an EXPLAIN / EXPLAIN QUERY PLAN statement.

    Leading comments are skipped.
    """
    for token in tokenize_sql(sql):
        if token.type == TokenType.COMMENT:
            continue
        if token.type == TokenType.SQL_TEXT and not token.text.strip():
            continue
        return token.type == TokenType.SQL_TEXT and bool(_EXPLAIN.match(token.text))
    return False
