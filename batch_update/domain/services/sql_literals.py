"""SQL Literal Rendering.

Quoting and escaping helpers used by the statement builder. Values are inlined
as literals (the statement is a single self-contained string), so escaping must
round-trip arbitrary text exactly: embedded quotes, backslashes, newlines and
runs of whitespace are preserved as-is.

Dialect rules:
    - postgresql: quotes doubled; text containing a backslash uses the E'...'
      form with backslashes doubled, which reads back the same whether or not
      standard_conforming_strings is on
    - sqlite: quotes doubled; backslashes are ordinary characters
"""

import json
import math
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from batch_update.domain.ports import InvalidArgumentError

SUPPORTED_DIALECTS = ("postgresql", "sqlite")
DEFAULT_DIALECT = "postgresql"


def normalize_dialect(dialect: str) -> str:
    """Validate and lower-case a dialect name."""
    name = (dialect or DEFAULT_DIALECT).lower()
    if name == "postgres":
        name = "postgresql"
    if name not in SUPPORTED_DIALECTS:
        raise InvalidArgumentError(f"Unsupported SQL dialect: {dialect}. Supported: {list(SUPPORTED_DIALECTS)}")
    return name


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling embedded double quotes."""
    return '"' + str(name).replace('"', '""') + '"'


def quote_string(text: str, dialect: str = DEFAULT_DIALECT) -> str:
    """Quote ``text`` as a string literal for ``dialect``."""
    escaped = text.replace("'", "''")
    if dialect == "postgresql" and "\\" in text:
        return "E'" + escaped.replace("\\", "\\\\") + "'"
    return "'" + escaped + "'"


def _format_datetime(value: datetime) -> str:
    text = value.strftime("%Y-%m-%d %H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}"
    if value.tzinfo is not None:
        offset = value.strftime("%z")
        if offset:
            text += f"{offset[:3]}:{offset[3:]}"
    return text


def quote_value(value: Any, dialect: str = DEFAULT_DIALECT) -> str:
    """Render a Python scalar as a SQL literal.

    Parameters:
        value: None, bool, int, float, Decimal, str, date, datetime, time,
               UUID, bytes, or a JSON-serializable list/dict
        dialect: Target dialect (postgresql, sqlite)

    Returns:
        Literal text ready to inline into a statement

    Raises:
        InvalidArgumentError: If the value type has no literal form
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        if dialect == "sqlite":
            return "1" if value else "0"
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "'NaN'"
        if math.isinf(value):
            return "'Infinity'" if value > 0 else "'-Infinity'"
        return repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            return quote_string(str(value), dialect)
        return str(value)
    if isinstance(value, str):
        return quote_string(value, dialect)
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime):
        return quote_string(_format_datetime(value), dialect)
    if isinstance(value, (date, time)):
        return quote_string(value.isoformat(), dialect)
    if isinstance(value, uuid.UUID):
        return quote_string(str(value), dialect)
    if isinstance(value, (bytes, bytearray, memoryview)):
        hex_text = bytes(value).hex()
        if dialect == "postgresql":
            return quote_string("\\x" + hex_text, dialect)
        return f"X'{hex_text}'"
    if isinstance(value, (list, dict)):
        return quote_string(json.dumps(value), dialect)
    raise InvalidArgumentError(f"Cannot render value of type {type(value).__name__} as a SQL literal")


def cast_value(value: Any, sql_type: str, dialect: str = DEFAULT_DIALECT) -> str:
    """Render ``CAST(<literal> AS <sql_type>)``."""
    return f"CAST({quote_value(value, dialect)} AS {sql_type})"
