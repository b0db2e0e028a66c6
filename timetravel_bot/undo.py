from __future__ import annotations

import logging
import secrets
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Iterable

from .errors import Expired, NotFound, PermissionDenied
from .models import ReconciliationOutcome
from .ports import MemberRoleProvider, Renderer

logger = logging.getLogger("timetravel_bot")

CONTROL_PREFIX = "ttundo"
DEFAULT_UNDO_TTL_SECONDS = 300
# 5 action rows x 5 buttons per message.
MAX_CONTROLS_PER_MESSAGE = 25
# Pruned sessions remembered so their controls keep answering "expired".
MAX_EXPIRED_SESSIONS = 4096


@dataclass(frozen=True, slots=True)
class ControlKey:
    session_id: str
    owner_id: int
    role_id: int
    expires_at: int

    def encode(self) -> str:
        return f"{CONTROL_PREFIX}:{self.session_id}:{self.owner_id}:{self.role_id}:{self.expires_at}"


def is_control_token(raw: str) -> bool:
    return raw.startswith(f"{CONTROL_PREFIX}:")


def decode_control(raw: str) -> ControlKey:
    parts = raw.split(":")
    if len(parts) != 5 or parts[0] != CONTROL_PREFIX or not parts[1]:
        raise NotFound("Unknown role removal control.")
    try:
        owner_id, role_id, expires_at = int(parts[2]), int(parts[3]), int(parts[4])
    except ValueError:
        raise NotFound("Unknown role removal control.") from None
    return ControlKey(session_id=parts[1], owner_id=owner_id, role_id=role_id, expires_at=expires_at)


@dataclass(frozen=True, slots=True)
class UndoSession:
    session_id: str
    owner_id: int
    candidate_roles: frozenset[int]
    created_at: float
    expires_at: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def control(self, role_id: int) -> ControlKey:
        return ControlKey(
            session_id=self.session_id,
            owner_id=self.owner_id,
            role_id=role_id,
            expires_at=self.expires_at,
        )


class UndoRegistry:
    """In-memory map of rendered confirmations to their reversal sessions.

    Nothing tears sessions down on a timer: the session's own deadline is
    compared on every invocation. Pruned sessions are kept as tombstones so
    their controls still report ``Expired`` while controls that were never
    issued report ``NotFound``. The deadline inside a token is never trusted.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_UNDO_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        max_expired_sessions: int = MAX_EXPIRED_SESSIONS,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.max_expired_sessions = max_expired_sessions
        self._sessions: dict[str, UndoSession] = {}
        self._expired: OrderedDict[str, UndoSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def open_session(self, owner_id: int, role_ids: Iterable[int]) -> UndoSession:
        now = self.clock()
        self.prune(now)
        session = UndoSession(
            session_id=secrets.token_hex(6),
            owner_id=owner_id,
            candidate_roles=frozenset(role_ids),
            created_at=now,
            expires_at=int(now + self.ttl_seconds),
        )
        self._sessions[session.session_id] = session
        return session

    def prune(self, now: float | None = None) -> int:
        now = self.clock() if now is None else now
        stale = [key for key, session in self._sessions.items() if session.is_expired(now)]
        for key in stale:
            self._expired[key] = self._sessions.pop(key)
        while len(self._expired) > self.max_expired_sessions:
            self._expired.popitem(last=False)
        return len(stale)

    def resolve(self, invoker_id: int, raw: str) -> ControlKey:
        """Validate a control invocation without touching any roles."""
        key = decode_control(raw)
        now = self.clock()
        session = self._sessions.get(key.session_id)
        expired = session is None
        if session is None:
            session = self._expired.get(key.session_id)
        if session is None or session.owner_id != key.owner_id or key.role_id not in session.candidate_roles:
            raise NotFound("Unknown role removal control.")
        if expired or session.is_expired(now) or key.expires_at != session.expires_at:
            raise Expired("These role buttons have expired.")
        if invoker_id != key.owner_id:
            raise PermissionDenied("You can only remove roles from your own profile.")
        return key

    async def invoke(self, invoker_id: int, raw: str, roles: MemberRoleProvider) -> ControlKey:
        key = self.resolve(invoker_id, raw)
        current = await roles.get_current_roles(key.owner_id)
        if key.role_id not in current:
            raise NotFound("Role not found or already removed.")
        await roles.remove_roles(key.owner_id, [key.role_id])
        logger.info("Reversal control removed role=%s from member=%s", key.role_id, key.owner_id)
        return key


class ConfirmationPresenter:
    """Renders an outcome and wires one reversal control per held role."""

    def __init__(self, registry: UndoRegistry) -> None:
        self.registry = registry

    async def present(
        self,
        outcome: ReconciliationOutcome,
        owner_id: int,
        renderer: Renderer,
    ) -> UndoSession | None:
        held = sorted(outcome.held_roles)
        handle = renderer.render(outcome, owner_id)
        session: UndoSession | None = None
        if held:
            session = self.registry.open_session(owner_id, held)
            for role_id in held[:MAX_CONTROLS_PER_MESSAGE]:
                renderer.register_control(handle, owner_id, role_id, session.control(role_id).encode())
        await renderer.publish(handle)
        return session
