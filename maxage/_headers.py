from __future__ import annotations

import logging
import string
import typing as tp

from ._exceptions import CacheControlError, ParseError, ValidationError

logger = logging.getLogger("maxage.headers")

## Grammar


HTAB = "\t"
SP = " "
obs_text = "".join(chr(i) for i in range(0x80, 0xFF + 1))  # 0x80-0xFF

tchar = "!#$%&'*+-.^_`|~0123456789" + string.ascii_letters
qdtext = "".join(
    [
        HTAB,
        SP,
        "\x21",
        "".join(chr(i) for i in range(0x23, 0x5B + 1)),  # 0x23-0x5b
        "".join(chr(i) for i in range(0x5D, 0x7E + 1)),  # 0x5D-0x7E
        obs_text,
    ]
)

MAX_AGE = "max-age"
STALE_WHILE_REVALIDATE = "stale-while-revalidate"

# Directives carrying delta-seconds that the cache understands, everything else is ignored.
TIME_FIELDS = (
    MAX_AGE,
    STALE_WHILE_REVALIDATE,
)

__all__ = (
    "MAX_AGE",
    "STALE_WHILE_REVALIDATE",
    "parse_cache_control",
    "parse_directives",
    "validate_directives",
)


def strip_ows_around(text: str) -> str:
    return text.strip(" \t")


def split_elements(header_value: str) -> tp.List[str]:
    """
    Split a comma-separated header value, keeping commas inside quoted strings.
    """
    elements: tp.List[str] = []
    current = ""
    in_quotes = False

    for char in header_value:
        if char == '"':
            in_quotes = not in_quotes
        if char == "," and not in_quotes:
            elements.append(current)
            current = ""
            continue
        current += char
    elements.append(current)
    return elements


def parse_directives(header_value: str) -> tp.Dict[str, tp.Optional[str]]:
    """
    Tokenize a raw `Cache-Control` value into directive names and their raw values.

    Empty list elements are skipped. Names are lowercased. When a directive appears
    more than once, the last occurrence wins.

    :param header_value: The raw header value, e.g. `max-age=60, stale-while-revalidate=30`
    :type header_value: str
    :raises ParseError: If the value violates the directive grammar
    :return: Mapping of directive names to their raw (unquoted) values, `None` for valueless directives
    :rtype: tp.Dict[str, tp.Optional[str]]
    """

    directives: tp.Dict[str, tp.Optional[str]] = {}

    for directive in split_elements(header_value):
        directive = strip_ows_around(directive)

        if not directive:
            continue

        key, sep, value = directive.partition("=")
        key = strip_ows_around(key)

        if not key:
            raise ParseError("The directive name should not be left blank.")

        for key_char in key:
            if key_char not in tchar:
                raise ParseError(f"The character '{key_char!r}' is not permitted in the directive name.")

        if not sep:
            directives[key.lower()] = None
            continue

        value = strip_ows_around(value)

        if not value:
            raise ParseError("The directive value cannot be left blank.")

        if value[0] == '"':
            if len(value) < 2 or value[-1] != '"':
                raise ParseError("Invalid quotes around the value.")
            for value_char in value[1:-1]:
                if value_char not in qdtext:
                    raise ParseError(f"The character '{value_char!r}' is not permitted for the quoted values.")
        else:
            for value_char in value:
                if value_char not in tchar:
                    raise ParseError(f"The character '{value_char!r}' is not permitted for the unquoted values.")

        directives[key.lower()] = value

    return directives


def validate_directives(directives: tp.Mapping[str, tp.Optional[str]]) -> tp.Dict[str, int]:
    validated_data: tp.Dict[str, int] = {}

    for key, value in directives.items():
        if key not in TIME_FIELDS:
            continue

        if value is None:
            raise ValidationError(f"The directive '{key}' necessitates a value.")

        if value[0] == '"' or value[-1] == '"':
            raise ValidationError(f"The argument '{key}' should be an integer, but a quote was found.")

        if not value.isdigit():
            raise ValidationError(f"The argument '{key}' should be an integer, but got '{value!r}'.")

        validated_data[key] = int(value)

    return validated_data


def parse_cache_control(header_value: tp.Union[str, tp.Sequence[str], None]) -> tp.Dict[str, int]:
    """
    Parse a `Cache-Control` header into the directives the cache understands.

    Only `max-age` and `stale-while-revalidate` are recognized. A missing or
    malformed header results in an empty mapping, which means "do not cache".

    :param header_value: A raw header value, a list of header lines or None
    :type header_value: tp.Union[str, tp.Sequence[str], None]
    :return: Mapping of recognized directive names to seconds
    :rtype: tp.Dict[str, int]
    """

    if not header_value:
        return {}

    if not isinstance(header_value, str):
        header_value = ", ".join(header_value)

    try:
        return validate_directives(parse_directives(header_value))
    except CacheControlError as exc:
        logger.debug(f"Ignoring malformed Cache-Control header {header_value!r}: {exc}")
        return {}
