"""Translation of `?` positional placeholders into driver parameter styles."""
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

# paramstyles handled here, named after PEP 249
QMARK = "qmark"
FORMAT = "format"
PYFORMAT = "pyformat"

_CLOSING_QUOTES = {"'": "'", '"': '"', "`": "`"}


def _literal_end(sql: str, start: int, backslash_escapes: bool) -> int:
    """Index just past the quoted literal opening at `start`."""
    quote = _CLOSING_QUOTES[sql[start]]
    i = start + 1
    while i < len(sql):
        if backslash_escapes and sql[i] == "\\":
            i += 2
            continue
        if sql[i] == quote:
            return i + 1
        i += 1
    return len(sql)


def _rewrite(
    sql: str, replace, escape_percent: bool, numbered: bool, backslash_escapes: bool = False
) -> str:
    """
    Walk the statement, replacing placeholders outside literals and comments.

    `replace` receives the 1-based parameter position and returns the text
    for the driver. Percent signs are doubled everywhere when
    `escape_percent` is set, because format-style drivers interpolate the
    whole statement. With `backslash_escapes` (MySQL's default sql_mode) a
    backslash inside a literal escapes the next character.
    """
    out = []
    position = 0
    i = 0
    length = len(sql)

    def literal(text: str) -> str:
        return text.replace("%", "%%") if escape_percent else text

    while i < length:
        char = sql[i]

        if char in _CLOSING_QUOTES:
            end = _literal_end(sql, i, backslash_escapes)
            out.append(literal(sql[i:end]))
            i = end
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end
            out.append(literal(sql[i:end]))
            i = end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
            out.append(literal(sql[i:end]))
            i = end
        elif char == "?":
            position += 1
            out.append(replace(position))
            i += 1
        elif numbered and char == "$" and i + 1 < length and sql[i + 1].isdigit():
            end = i + 1
            while end < length and sql[end].isdigit():
                end += 1
            out.append(replace(int(sql[i + 1:end])))
            i = end
        elif char == "%" and escape_percent:
            out.append("%%")
            i += 1
        else:
            out.append(char)
            i += 1

    return "".join(out)


def translate_placeholders(
    sql: str,
    params: Optional[Union[Sequence[Any], Dict[str, Any]]],
    paramstyle: str
) -> Tuple[str, Optional[Union[Tuple[Any, ...], Dict[str, Any]]]]:
    """
    Prepare a statement and its parameters for a DB-API driver.

    Args:
        sql: Backend-native statement using `?` for positional parameters
        params: List of positional values, a mapping passed through as-is,
            or None / empty for a statement without parameters
        paramstyle: One of QMARK, FORMAT or PYFORMAT

    Returns:
        Tuple of (statement, parameters); parameters is None when nothing is
        bound so the caller can execute the statement without interpolation
    """
    if isinstance(params, dict):
        return sql, (params or None)
    if not params:
        return sql, None

    values: List[Any] = list(params)

    if paramstyle == QMARK:
        return sql, tuple(values)

    if paramstyle == FORMAT:
        return _rewrite(
            sql, lambda _: "%s", escape_percent=True, numbered=False, backslash_escapes=True
        ), tuple(values)

    if paramstyle == PYFORMAT:
        statement = _rewrite(
            sql, lambda n: f"%(p{n})s", escape_percent=True, numbered=True
        )
        return statement, {f"p{n}": value for n, value in enumerate(values, start=1)}

    raise ValueError(f"Unsupported paramstyle: {paramstyle}")
