__all__ = ("CacheControlError", "ParseError", "ValidationError")


class CacheControlError(Exception):
    """A `Cache-Control` header could not be understood."""


class ParseError(CacheControlError):
    """
    The header does not follow the directive grammar: a blank directive name or value,
    an unterminated quoted value, or a character outside the allowed token set.
    """


class ValidationError(CacheControlError):
    """
    A directive parsed but its value is unusable, e.g. `max-age` or
    `stale-while-revalidate` without a value, quoted, or not made of digits.
    """
