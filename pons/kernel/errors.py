from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class PonsError(Exception):
    """Base typed error for the sync core.

    - Stable `code` for programmatic handling (logs, API payloads).
    - Human-readable `message` for UI surfaces.
    - Optional `meta` payload (safe-to-expose only, never credentials).
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 500,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.meta = dict(meta or {})

    def to_public_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
        }
        if self.meta:
            payload["meta"] = self.meta
        return payload


class ConfigurationError(PonsError):
    """Unknown provider type or missing credential field. Never retried."""

    def __init__(
        self,
        *,
        message: str = "Invalid integration configuration",
        code: str = "integration.configuration",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=422, meta=meta)


class ConnectionFailedError(PonsError):
    """Provider rejected the credentials or was unreachable at connect time."""

    def __init__(
        self,
        *,
        message: str = "Failed to connect integration",
        code: str = "integration.connection_failed",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=502, meta=meta)


class TransientSyncError(PonsError):
    """A single sync call failed; subject to the scheduler's retry loop."""

    def __init__(
        self,
        *,
        message: str = "Sync failed",
        code: str = "sync.transient",
        meta: dict[str, Any] | None = None,
        status_code: int = 503,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)


class RateLimitExceededError(TransientSyncError):
    def __init__(
        self,
        *,
        key: str,
        reset_at: float,
        message: str | None = None,
    ):
        super().__init__(
            message=message or f"Rate limit exceeded for {key}",
            code="rate_limit.exceeded",
            meta={"key": key, "reset_at": reset_at},
            status_code=429,
        )
        self.key = key
        self.reset_at = reset_at


class NotFoundError(PonsError):
    def __init__(self, *, message: str = "Not found", code: str = "resource.not_found", meta: dict[str, Any] | None = None):
        super().__init__(code=code, message=message, status_code=404, meta=meta)
