"""Perch exception hierarchy.

Shared across routers, the pipeline, the dispatcher, and middleware so
every module raises and catches the same types.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when setup arguments are invalid.

    Fatal: raised at construction or freeze time, never per request.
    """


class DuplicateHandlerError(ConfigurationError):
    """The same non-duplicable handler appears twice in one chain."""


class RouteRegistrationError(PerchError):
    """A route pattern was rejected by its router.

    Non-fatal: the dispatcher logs it and skips the route.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    Raised (or returned) by routers, middleware, or handlers. The
    dispatcher catches these and hands them to the error handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)

    @property
    def message(self) -> str:
        """Human-readable body text for the default error response."""
        return self.detail or f"Error {self.status}"


class NotFound(HTTPError):  # noqa: N818
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405 — a route exists for the path, but not for this HTTP method."""

    def __init__(self, allowed: frozenset[str] = frozenset(), detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        headers = (("Allow", allow_value),) if allow_value else ()
        super().__init__(
            status=405,
            detail=detail or "Method Not Allowed",
            headers=headers,
        )


class MethodNotImplemented(HTTPError):  # noqa: N818
    """501 — the request method is outside the supported set."""

    def __init__(self, method: str = "", detail: str = "") -> None:
        default_detail = f"Method {method!r} Not Implemented" if method else "Not Implemented"
        super().__init__(status=501, detail=detail or default_detail)


class TooManyRequests(HTTPError):  # noqa: N818
    """429 — the client exhausted its rate-limit budget.

    Distinct from generic failures so callers can tell "retry later"
    apart from "bad request".
    """

    def __init__(self, retry_after: int | None = None, detail: str = "Too Many Requests") -> None:
        headers = (("Retry-After", str(retry_after)),) if retry_after is not None else ()
        super().__init__(status=429, detail=detail, headers=headers)


class TimeoutExceeded(HTTPError):  # noqa: N818
    """504 — a wrapped operation did not finish before its deadline."""

    def __init__(self, detail: str = "Timed out") -> None:
        super().__init__(status=504, detail=detail)


class HandlerError(HTTPError):
    """A non-HTTP exception raised or returned by a handler.

    Carries the status declared on the original exception (an integer
    ``status`` attribute) or 500. The original is chained as
    ``__cause__``.
    """

    def __init__(self, status: int = 500, detail: str = "") -> None:
        super().__init__(status=status, detail=detail or "Internal Server Error")

    @classmethod
    def wrap(cls, exc: BaseException) -> HTTPError:
        """Normalize any exception into an HTTP-status-bearing error."""
        if isinstance(exc, HTTPError):
            return exc
        status = getattr(exc, "status", None)
        if not isinstance(status, int) or isinstance(status, bool) or not 400 <= status <= 599:
            status = 500
        err = cls(status=status, detail=str(exc))
        err.__cause__ = exc
        return err
