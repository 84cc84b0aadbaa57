from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


HTTP_TO_CACHE_CODE = {
    404: "CACHE-404",
    422: "CACHE-422",
    500: "CACHE-500",
}


class CacheError(Exception):
    """Base class for errors raised by the cache engine."""


class KeyNotFoundError(CacheError, KeyError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key: '{key}' not found")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


@dataclass(frozen=True)
class ErrorPayload:
    error_id: str
    error_code: str
    message: str
    retryable: bool

    def to_response(self) -> dict:
        return {
            "id": self.error_id,
            "code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }


def build_error(status_code: int, message: str, *, retryable: bool = False) -> ErrorPayload:
    return ErrorPayload(
        error_id=f"err_{uuid4().hex[:12]}",
        error_code=HTTP_TO_CACHE_CODE.get(status_code, "CACHE-500"),
        message=message,
        retryable=retryable,
    )
