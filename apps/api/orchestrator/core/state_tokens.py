"""Stateless, signed OAuth `state` values.

Wire format (kept for links issued by earlier deployments)::

    base64("{workspace_id}|{user_id}|{issued_at_ticks}") + "." + base64(hmac_sha256(payload))

`issued_at_ticks` counts 100-nanosecond intervals since 0001-01-01T00:00:00Z.
"""

from __future__ import annotations

import base64
import binascii
import enum
import hashlib
import hmac
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from uuid import UUID

from fastapi import status

from orchestrator.core.config import get_settings
from orchestrator.core.errors import ServiceError

DEFAULT_STATE_TTL = timedelta(minutes=10)

_TICKS_EPOCH = datetime(1, 1, 1, tzinfo=UTC)
_TICKS_PER_MICROSECOND = 10


class StateTokenConfigError(RuntimeError):
    pass


class StateTokenFailure(enum.StrEnum):
    malformed = "malformed"
    invalid_signature = "invalid_signature"
    expired = "expired"


class StateTokenError(ServiceError):
    code = "state_token_invalid"
    default_status = status.HTTP_400_BAD_REQUEST

    _MESSAGES = {
        StateTokenFailure.malformed: "OAuth state is malformed",
        StateTokenFailure.invalid_signature: "OAuth state signature is invalid",
        StateTokenFailure.expired: "OAuth state has expired",
    }

    def __init__(self, reason: StateTokenFailure) -> None:
        super().__init__(self._MESSAGES[reason])
        self.reason = reason


def datetime_to_ticks(value: datetime) -> int:
    delta = value.astimezone(UTC) - _TICKS_EPOCH
    return (delta // timedelta(microseconds=1)) * _TICKS_PER_MICROSECOND


def ticks_to_datetime(ticks: int) -> datetime:
    return _TICKS_EPOCH + timedelta(microseconds=ticks // _TICKS_PER_MICROSECOND)


class StateTokenSigner:
    def __init__(
        self,
        secret: bytes,
        *,
        ttl: timedelta = DEFAULT_STATE_TTL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not secret:
            raise StateTokenConfigError("OAuth state signing secret must not be empty")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(UTC))

    def create(self, workspace_id: UUID, user_id: UUID) -> str:
        ticks = datetime_to_ticks(self._clock())
        payload = f"{workspace_id}|{user_id}|{ticks}".encode()
        signature = self._sign(payload)
        return f"{_b64encode(payload)}.{_b64encode(signature)}"

    def verify(self, token: str) -> tuple[UUID, UUID]:
        parts = (token or "").split(".")
        if len(parts) != 2:
            raise StateTokenError(StateTokenFailure.malformed)

        try:
            payload = _b64decode(parts[0])
            signature = _b64decode(parts[1])
        except ValueError as e:
            raise StateTokenError(StateTokenFailure.malformed) from e

        # Payload fields are parsed only after the signature checks out.
        if not hmac.compare_digest(self._sign(payload), signature):
            raise StateTokenError(StateTokenFailure.invalid_signature)

        try:
            fields = payload.decode("utf-8").split("|")
        except UnicodeDecodeError as e:
            raise StateTokenError(StateTokenFailure.malformed) from e
        if len(fields) != 3:
            raise StateTokenError(StateTokenFailure.malformed)

        try:
            workspace_id = UUID(fields[0])
            user_id = UUID(fields[1])
            issued_at = ticks_to_datetime(int(fields[2]))
        except (ValueError, OverflowError) as e:
            raise StateTokenError(StateTokenFailure.malformed) from e

        if self._clock() - issued_at > self._ttl:
            raise StateTokenError(StateTokenFailure.expired)

        return workspace_id, user_id

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._secret, payload, hashlib.sha256).digest()


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(segment: str) -> bytes:
    if not segment:
        raise ValueError("empty segment")
    try:
        return base64.b64decode(segment, validate=True)
    except binascii.Error as e:
        raise ValueError("invalid base64") from e


@lru_cache(maxsize=1)
def get_state_token_signer() -> StateTokenSigner:
    settings = get_settings()
    if not settings.OAUTH_STATE_SECRET:
        raise StateTokenConfigError("OAUTH_STATE_SECRET must be set")
    return StateTokenSigner(
        settings.OAUTH_STATE_SECRET.encode("utf-8"),
        ttl=timedelta(seconds=settings.OAUTH_STATE_TTL_SECONDS),
    )
