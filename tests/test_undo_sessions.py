from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from timetravel_bot.errors import Expired, NotFound, PermissionDenied  # noqa: E402
from timetravel_bot.models import OutcomeStatus, ReconciliationOutcome  # noqa: E402
from timetravel_bot.undo import (  # noqa: E402
    MAX_CONTROLS_PER_MESSAGE,
    ConfirmationPresenter,
    ControlKey,
    UndoRegistry,
    decode_control,
    is_control_token,
)


OWNER = 11
INTRUDER = 22
ROLE = 501


class _Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _FakeRoles:
    def __init__(self, current: set[int]) -> None:
        self.current = set(current)
        self.removed: list[int] = []

    async def get_current_roles(self, member_id: int) -> set[int]:
        return set(self.current)

    async def remove_roles(self, member_id: int, role_ids) -> None:
        for role_id in role_ids:
            self.removed.append(role_id)
            self.current.discard(role_id)

    async def add_roles(self, member_id: int, role_ids) -> None:
        self.current.update(role_ids)

    async def list_guild_role_ids(self, guild_id: int) -> set[int]:
        return set(self.current)


class _RecordingRenderer:
    def __init__(self) -> None:
        self.rendered: list[tuple[ReconciliationOutcome, int]] = []
        self.controls: list[tuple[int, str]] = []
        self.published: list[object] = []

    def render(self, outcome: ReconciliationOutcome, owner_id: int) -> dict:
        self.rendered.append((outcome, owner_id))
        return {"owner": owner_id}

    def register_control(self, handle: dict, owner_id: int, role_id: int, token: str) -> str:
        self.controls.append((role_id, token))
        return token

    async def publish(self, handle: dict) -> None:
        self.published.append(handle)


def _outcome(held: set[int]) -> ReconciliationOutcome:
    return ReconciliationOutcome(
        target_value=30,
        matched_ranges=(),
        resolved_roles=frozenset(held),
        conflicting_roles=frozenset(),
        already_held=frozenset(held),
        to_add=frozenset(),
        to_remove=frozenset(),
        status=OutcomeStatus.ALREADY_CORRECT,
    )


def test_control_tokens_carry_owner_role_and_deadline() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    session = registry.open_session(OWNER, [ROLE])

    token = session.control(ROLE).encode()
    key = decode_control(token)

    assert is_control_token(token)
    assert len(token) <= 100
    assert (key.owner_id, key.role_id, key.expires_at) == (OWNER, ROLE, 1_300)


def test_other_member_cannot_use_the_control() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    token = registry.open_session(OWNER, [ROLE]).control(ROLE).encode()
    roles = _FakeRoles({ROLE})

    with pytest.raises(PermissionDenied):
        asyncio.run(registry.invoke(INTRUDER, token, roles))

    assert roles.current == {ROLE}


def test_owner_after_deadline_gets_expired_and_keeps_the_role() -> None:
    clock = _Clock()
    registry = UndoRegistry(ttl_seconds=300, clock=clock)
    token = registry.open_session(OWNER, [ROLE]).control(ROLE).encode()
    roles = _FakeRoles({ROLE})

    clock.now += 300
    with pytest.raises(Expired):
        asyncio.run(registry.invoke(OWNER, token, roles))

    assert roles.removed == []


def test_owner_removes_role_once_then_gets_not_found() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    token = registry.open_session(OWNER, [ROLE]).control(ROLE).encode()
    roles = _FakeRoles({ROLE, 777})

    key = asyncio.run(registry.invoke(OWNER, token, roles))
    assert key.role_id == ROLE
    assert roles.current == {777}

    with pytest.raises(NotFound):
        asyncio.run(registry.invoke(OWNER, token, roles))
    assert roles.removed == [ROLE]


def test_pruned_session_still_reports_expired_not_unknown() -> None:
    clock = _Clock()
    registry = UndoRegistry(ttl_seconds=60, clock=clock)
    token = registry.open_session(OWNER, [ROLE]).control(ROLE).encode()

    clock.now += 120
    assert registry.prune() == 1
    assert len(registry) == 0

    with pytest.raises(Expired):
        registry.resolve(OWNER, token)


def test_forged_or_foreign_tokens_are_not_found() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    session = registry.open_session(OWNER, [ROLE])

    with pytest.raises(NotFound):
        registry.resolve(OWNER, "ttundo:garbage")
    with pytest.raises(NotFound):
        registry.resolve(OWNER, session.control(999).encode())
    with pytest.raises(NotFound):
        registry.resolve(OWNER, f"ttundo:deadbeef0000:{OWNER}:{ROLE}:999999")


def test_presenter_registers_one_control_per_held_role() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    renderer = _RecordingRenderer()

    session = asyncio.run(ConfirmationPresenter(registry).present(_outcome({1, 2, 3}), OWNER, renderer))

    assert session is not None
    assert [role_id for role_id, _ in renderer.controls] == [1, 2, 3]
    assert all(decode_control(token).session_id == session.session_id for _, token in renderer.controls)
    assert len(renderer.published) == 1


def test_presenter_without_held_roles_publishes_plain_summary() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    renderer = _RecordingRenderer()

    session = asyncio.run(ConfirmationPresenter(registry).present(_outcome(set()), OWNER, renderer))

    assert session is None
    assert renderer.controls == []
    assert len(renderer.published) == 1
    assert len(registry) == 0


def test_presenter_caps_controls_per_message() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    renderer = _RecordingRenderer()
    held = set(range(1, MAX_CONTROLS_PER_MESSAGE + 6))

    asyncio.run(ConfirmationPresenter(registry).present(_outcome(held), OWNER, renderer))

    assert len(renderer.controls) == MAX_CONTROLS_PER_MESSAGE


def test_rewritten_deadline_does_not_revive_an_expired_session() -> None:
    clock = _Clock()
    registry = UndoRegistry(ttl_seconds=300, clock=clock)
    issued = decode_control(registry.open_session(OWNER, [ROLE]).control(ROLE).encode())
    roles = _FakeRoles({ROLE})
    extended = ControlKey(issued.session_id, OWNER, ROLE, 10**12).encode()

    clock.now += 400
    with pytest.raises(Expired):
        asyncio.run(registry.invoke(OWNER, extended, roles))

    assert roles.current == {ROLE}
    assert roles.removed == []


def test_rewritten_deadline_is_rejected_while_session_is_live() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    issued = decode_control(registry.open_session(OWNER, [ROLE]).control(ROLE).encode())

    with pytest.raises(Expired):
        registry.resolve(OWNER, ControlKey(issued.session_id, OWNER, ROLE, issued.expires_at + 60).encode())


def test_never_issued_control_with_past_deadline_is_not_found() -> None:
    registry = UndoRegistry(ttl_seconds=300, clock=_Clock())
    registry.open_session(OWNER, [ROLE])

    with pytest.raises(NotFound):
        registry.resolve(OWNER, f"ttundo:deadbeef0000:{OWNER}:{ROLE}:100")


def test_expired_tombstones_are_bounded() -> None:
    clock = _Clock()
    registry = UndoRegistry(ttl_seconds=10, clock=clock, max_expired_sessions=2)
    tokens = [registry.open_session(OWNER, [ROLE]).control(ROLE).encode() for _ in range(3)]

    clock.now += 60
    registry.prune()

    with pytest.raises(NotFound):
        registry.resolve(OWNER, tokens[0])
    for token in tokens[1:]:
        with pytest.raises(Expired):
            registry.resolve(OWNER, token)
