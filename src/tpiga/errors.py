"""Exception types.

Three categories exist and none of them is recoverable:

* :class:`PreconditionError`: the caller broke a protocol (stale cache read,
  ``fill_cache`` before ``init_cache``, index out of range). Checked only when
  ``Settings.check_preconditions`` is on.
* :class:`ConfigurationError`: an unsupported flag, basis kind or a dimension
  mismatch, raised as early as possible (construction or ``reset``).
* :class:`InputDataError`: malformed external data (patch files).
"""

from __future__ import annotations

from .config import get_settings


class TpigaError(Exception):
    """Base class of all the errors raised by the library."""


class PreconditionError(TpigaError, AssertionError):
    """A precondition of an operation was violated by the caller."""


class ConfigurationError(TpigaError, ValueError):
    """The requested configuration is not supported."""


class InputDataError(TpigaError, ValueError):
    """External input data is malformed."""


def check_precondition(condition: bool, message: str) -> None:
    """Raise a :class:`PreconditionError` if ``condition`` is False.

    Nothing is checked when preconditions are disabled in the settings.

    Args:
        condition (bool): Condition that must hold.
        message (str): Description of the violated precondition.

    Raises:
        PreconditionError: If the condition does not hold and checks are enabled.
    """
    if not condition and get_settings().check_preconditions:
        raise PreconditionError(message)


def dimension_mismatch(name: str, expected: object, actual: object) -> str:
    """Format the message of a dimension mismatch."""
    return f"Dimension mismatch for {name}: expected {expected}, got {actual}"
