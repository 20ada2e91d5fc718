"""Authentication state records and the stage-tagged state store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from time import monotonic
from typing import Any, Callable, Protocol

import msgspec
from msgspec import Struct, structs

from .exceptions import NoStateError, StageMismatchError, StateTamperedError
from .identifiers import generate_id57, sign_state_id, verify_state_id
from .serialization import msgpack_decode, msgpack_encode

logger = logging.getLogger(__name__)

__all__ = [
    "AuthStage",
    "AuthenticationState",
    "InMemoryStateStore",
    "StateErrorInfo",
    "StateStore",
]


class AuthStage(str, Enum):
    """Stage marker restricting which flow may load a persisted state."""

    USERPASS = "core:UserPassBase.state"
    USERPASS_ORG = "core:UserPassOrgBase.state"
    COMPLETED = "core:completed"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class StateErrorInfo(Struct, frozen=True):
    """Error attached to a state after a failed verification attempt."""

    code: str
    params: dict[str, Any] = msgspec.field(default_factory=dict)


class AuthenticationState(Struct, frozen=True, omit_defaults=True):
    """A single logical login attempt.

    Values are immutable; every change goes through :meth:`replace` and is
    persisted under a fresh identifier.
    """

    auth_source_id: str
    forced_username: str | None = None
    cached_username: str | int | None = None
    cached_organization: str | int | None = None
    remember_me: bool | None = None
    error: StateErrorInfo | None = None
    sp_metadata: Any = None
    return_url: str | None = None
    attributes: dict[str, list[str]] = msgspec.field(default_factory=dict)
    organization_id: str | None = None

    def replace(self, **changes: Any) -> "AuthenticationState":
        return structs.replace(self, **changes)

    def with_error(self, code: str, params: dict[str, Any] | None = None) -> "AuthenticationState":
        return self.replace(error=StateErrorInfo(code=code, params=dict(params or {})))

    def without_error(self) -> "AuthenticationState":
        if self.error is None:
            return self
        return self.replace(error=None)


class StateStore(Protocol):
    """Durable, TTL-bound mapping from opaque id to a stage-tagged state."""

    async def save(self, state: AuthenticationState, stage: AuthStage) -> str:  # pragma: no cover - protocol
        ...

    async def load(self, state_id: str, stage: AuthStage) -> AuthenticationState:  # pragma: no cover - protocol
        ...


@dataclass(slots=True, frozen=True)
class _StoredState:
    stage: AuthStage
    blob: bytes
    expires_at: float


class InMemoryStateStore:
    """Append-only state store keeping msgpack blobs in process memory.

    Every :meth:`save` creates a new entry; nothing is ever updated in place,
    so concurrent requests holding the same id can only ever observe the same
    snapshot.
    """

    def __init__(
        self,
        *,
        secret_key: bytes | str,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if isinstance(secret_key, str):
            secret_key = secret_key.encode("utf-8")
        if not secret_key:
            raise ValueError("State store requires a non-empty secret key")
        if ttl_seconds <= 0:
            raise ValueError("State TTL must be positive")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock or monotonic
        self._entries: dict[str, _StoredState] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    async def save(self, state: AuthenticationState, stage: AuthStage) -> str:
        blob = msgpack_encode(state)
        async with self._lock:
            now = self._clock()
            self._prune_expired(now)
            state_id = sign_state_id(generate_id57(), self._secret_key)
            while state_id in self._entries:  # pragma: no cover - astronomically unlikely
                state_id = sign_state_id(generate_id57(), self._secret_key)
            self._entries[state_id] = _StoredState(stage=stage, blob=blob, expires_at=now + self.ttl_seconds)
        logger.debug("saved state %s at stage %s", state_id, stage.value)
        return state_id

    async def load(self, state_id: str, stage: AuthStage) -> AuthenticationState:
        if not verify_state_id(state_id, self._secret_key):
            raise StateTamperedError("State identifier failed verification", state_id=state_id)
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(state_id)
            if entry is None:
                raise NoStateError("State information lost", state_id=state_id)
            if entry.expires_at <= now:
                self._entries.pop(state_id, None)
                raise NoStateError("State information expired", state_id=state_id)
        if entry.stage is not stage:
            raise StageMismatchError(
                "Wrong stage in state",
                state_id=state_id,
                expected=stage.value,
                actual=entry.stage.value,
            )
        return msgpack_decode(entry.blob, AuthenticationState)

    def _prune_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
