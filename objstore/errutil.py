"""Error aggregation and a transport stub that always fails."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any


class NonNilMultiError(Exception):
    """An error made of one or more other errors."""

    def __init__(self, errors: Iterable[BaseException]):
        self.errors = tuple(errors)
        super().__init__(*self.errors)

    def __str__(self) -> str:
        text = "; ".join(str(err) for err in self.errors)
        if len(self.errors) > 1:
            return f"{len(self.errors)} errors: {text}"
        return text

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)


class MultiError(list):
    """Collects errors; ``err()`` turns them into a single exception."""

    def add(self, err: BaseException | None) -> None:
        """Add an error, flattening nested multi-errors and ignoring None."""
        if err is None:
            return
        if isinstance(err, NonNilMultiError):
            self.extend(err.errors)
        else:
            self.append(err)

    def err(self) -> NonNilMultiError | None:
        """Return the collected errors as one exception, or None if there are none."""
        if not self:
            return None
        return NonNilMultiError(self)


class RoundTripperError(Exception):
    """The error produced by a failing round tripper."""


@dataclass
class ErrorRoundTripper:
    """A round tripper that raises its error for every request."""

    err: BaseException = field(default_factory=lambda: RoundTripperError("RoundTripper error"))
    attempts: int = field(default=0, init=False)

    def round_trip(self, request: Any) -> Any:
        """Count the attempt and fail it with the configured error."""
        self.attempts += 1
        raise self.err


def is_mocked_error(err: BaseException | None) -> bool:
    """Tell whether ``err`` is, or was caused by, a round tripper error."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, RoundTripperError):
            return True
        seen.add(id(err))
        err = err.__cause__ or err.__context__
    return False


def wrap_with_err_roundtripper(rt: Any) -> ErrorRoundTripper:
    """Replace any round tripper with one that always fails."""
    return ErrorRoundTripper(RoundTripperError("RoundTripper error"))