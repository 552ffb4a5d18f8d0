"""Typed failure outcomes returned at the client operation boundary."""

import asyncio
import enum
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

# Everything a remote call (record store, HTTP endpoint) may raise
REMOTE_ERRORS = (SQLAlchemyError, httpx.HTTPError, asyncio.TimeoutError, OSError)


class FailureKind(str, enum.Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    field: Optional[str] = None

    @classmethod
    def network(cls, message: str = "Network error, please try again.") -> "Failure":
        return cls(FailureKind.NETWORK, message)

    @classmethod
    def validation(cls, message: str, field: Optional[str] = None) -> "Failure":
        return cls(FailureKind.VALIDATION, message, field)
