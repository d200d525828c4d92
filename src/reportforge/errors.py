"""Exception types for ReportForge.

two families here and they are handled very differently: configuration errors
are the user's problem and get turned into validation issues at the engine
boundary, invariant errors are our problem and should blow up loudly.
"""


class ReportForgeError(Exception):
    """Base class for all ReportForge errors."""


class ConfigurationError(ReportForgeError, ValueError):
    """A formula, filter or query is malformed.

    code is a short machine-readable tag so the ui can decide how to show it.
    """

    def __init__(self, message: str, code: str = "invalid_configuration") -> None:
        super().__init__(message)
        self.code = code


class UnsupportedFilterError(ConfigurationError):
    """A filter operator was paired with a value it can't handle."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_filter")


class UnitTypeError(ConfigurationError):
    """Two unit types can't be combined with the requested operator."""


class InvariantError(ReportForgeError, AssertionError):
    """An internal invariant was broken (row without id, unordered buckets).

    subclassing AssertionError so it reads like a failed assert, but raised
    explicitly so it survives python -O.
    """
