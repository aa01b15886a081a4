"""
Exceptions raised by the memoization layer.
"""
from typing import Any, Optional, Union


class MemopadError(Exception):
    """Base class for memopad errors."""


class ForceThrowError(MemopadError):
    """
    Failure that always reaches the caller, even when a cached value could be
    served instead.

    Raise it from a compute function, either with a message or wrapping
    another exception:

        raise ForceThrowError("upstream rejected the token")
        raise ForceThrowError(original_error)

    A wrapped exception keeps its message and traceback, is chained as
    ``__cause__``, and stays reachable through ``unwrap()``. Attributes the
    wrapper does not define are looked up on the wrapped exception, so
    ``error.code`` works when the original carried a ``code``.
    """

    name = "ForceThrowError"

    def __init__(self, message: Union[str, BaseException, None] = None):
        original: Optional[BaseException] = None
        if isinstance(message, BaseException):
            original = message
            message = str(original)
        super().__init__(message)
        self.message = message or ""
        self.original = original
        if original is not None:
            self.__cause__ = original
            self.with_traceback(original.__traceback__)

    def unwrap(self) -> BaseException:
        """The wrapped exception, or this error when nothing was wrapped."""
        return self.original if self.original is not None else self

    def __getattr__(self, attr: str) -> Any:
        # Only reached for attributes missing on the wrapper itself
        original = self.__dict__.get("original")
        if original is None or attr.startswith("__"):
            raise AttributeError(attr)
        return getattr(original, attr)

    def __str__(self) -> str:
        return self.message


class MissingComputeError(MemopadError, TypeError):
    """A refresh was required but no compute function was supplied."""

    def __init__(self, key: str):
        super().__init__(f"No compute function supplied for {key!r}")
        self.key = key
