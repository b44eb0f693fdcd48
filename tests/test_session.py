"""会话管理器：状态机、失败语义、并发与登出作废。"""
import asyncio

import pytest

from eventmap.auth.backend import MockIdentityBackend
from eventmap.auth.errors import (
    AuthenticationCancelled,
    AuthenticationFailed,
    AuthenticationTimeout,
    SessionRestoreFailed,
)
from eventmap.auth.models import SessionStatus, UserIdentity
from eventmap.auth.session import SessionManager
from eventmap.config import SessionConfig


def _manager(config: SessionConfig, **backend_kwargs) -> SessionManager:
    return SessionManager(MockIdentityBackend(latency=0, **backend_kwargs), config)


@pytest.mark.asyncio
async def test_login_sets_authenticated(fast_config) -> None:
    manager = _manager(fast_config, fixed_user_id=None)
    user = await manager.login("anna@example.com", "x")
    assert manager.status == SessionStatus.AUTHENTICATED
    assert manager.current_user == user
    assert user.email == "anna@example.com"
    assert user.display_name == "anna"
    assert user.id
    assert not manager.is_busy


@pytest.mark.asyncio
async def test_register_sets_authenticated(fast_config) -> None:
    manager = _manager(fast_config)
    user = await manager.register("bob@example.com", "pw")
    assert manager.is_authenticated
    assert manager.current_user.email == "bob@example.com"
    assert user.id == "1"


@pytest.mark.asyncio
async def test_login_rejects_email_without_at(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    with pytest.raises(AuthenticationFailed) as exc:
        await manager.login("bad", "")
    assert exc.value.operation == "login"
    assert gate_backend.calls == []
    assert manager.status == SessionStatus.UNKNOWN


@pytest.mark.asyncio
async def test_failed_login_keeps_previous_session(fast_config) -> None:
    manager = _manager(fast_config)
    first = await manager.login("anna@example.com", "x")
    manager.backend.fail_with = RuntimeError("backend down")
    with pytest.raises(AuthenticationFailed) as exc:
        await manager.login("bob@example.com", "x")
    assert isinstance(exc.value.__cause__, RuntimeError)
    assert manager.is_authenticated
    assert manager.current_user == first
    assert not manager.is_busy


@pytest.mark.asyncio
async def test_failed_register_reports_register(fast_config) -> None:
    manager = _manager(fast_config, fail_with=ValueError("duplicate"))
    with pytest.raises(AuthenticationFailed) as exc:
        await manager.register("anna@example.com", "x")
    assert exc.value.operation == "register"
    assert manager.current_user is None


def test_logout_without_session() -> None:
    manager = SessionManager(MockIdentityBackend(latency=0))
    manager.logout()
    assert manager.status == SessionStatus.UNAUTHENTICATED
    assert manager.current_user is None


@pytest.mark.asyncio
async def test_logout_is_idempotent(fast_config) -> None:
    manager = _manager(fast_config)
    await manager.login("anna@example.com", "x")
    events = []
    manager.subscribe(events.append)
    manager.logout()
    after_once = manager.session
    manager.logout()
    assert manager.session == after_once
    assert after_once.status == SessionStatus.UNAUTHENTICATED
    assert len(events) == 1
    assert events[0].reason == "logout"


@pytest.mark.asyncio
async def test_logout_discards_pending_login(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    manager.logout()
    task = asyncio.create_task(manager.login("anna@example.com", "x"))
    await asyncio.sleep(0)
    assert manager.is_busy
    manager.logout()
    assert not manager.is_busy
    gate_backend.release()
    with pytest.raises(AuthenticationCancelled):
        await task
    assert manager.status == SessionStatus.UNAUTHENTICATED
    assert manager.current_user is None


@pytest.mark.asyncio
async def test_logout_discards_pending_login_when_signed_in(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    gate_backend.release()
    await manager.login("anna@example.com", "x")
    gate_backend.gate.clear()
    task = asyncio.create_task(manager.login("bob@example.com", "x"))
    await asyncio.sleep(0)
    manager.logout()
    gate_backend.release()
    with pytest.raises(AuthenticationCancelled):
        await task
    assert manager.session.current_user is None


@pytest.mark.asyncio
async def test_concurrent_login_rejected(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    first = asyncio.create_task(manager.login("anna@example.com", "x"))
    await asyncio.sleep(0)
    with pytest.raises(AuthenticationFailed):
        await manager.login("bob@example.com", "x")
    with pytest.raises(SessionRestoreFailed):
        await manager.restore_session()
    gate_backend.release()
    user = await first
    assert manager.current_user == user
    assert user.email == "anna@example.com"


@pytest.mark.asyncio
async def test_login_after_logout_not_blocked_by_stale_call(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    stale = asyncio.create_task(manager.login("anna@example.com", "x"))
    await asyncio.sleep(0)
    manager.logout()
    fresh = asyncio.create_task(manager.login("bob@example.com", "x"))
    await asyncio.sleep(0)
    gate_backend.release()
    with pytest.raises(AuthenticationCancelled):
        await stale
    user = await fresh
    assert manager.current_user == user
    assert user.email == "bob@example.com"
    assert not manager.is_busy


@pytest.mark.asyncio
async def test_login_timeout(gate_backend) -> None:
    manager = SessionManager(gate_backend, SessionConfig(login_timeout=0.01))
    with pytest.raises(AuthenticationTimeout) as exc:
        await manager.login("anna@example.com", "x")
    assert isinstance(exc.value, AuthenticationFailed)
    assert manager.current_user is None
    assert not manager.is_busy


@pytest.mark.asyncio
async def test_restore_without_saved_session(fast_config) -> None:
    manager = _manager(fast_config)
    events = []
    manager.subscribe(events.append)
    session = await manager.restore_session()
    assert session.status == SessionStatus.UNAUTHENTICATED
    assert [e.current.status for e in events] == [SessionStatus.CHECKING, SessionStatus.UNAUTHENTICATED]
    assert not manager.is_loading


@pytest.mark.asyncio
async def test_restore_returns_backend_user(fast_config, gate_backend) -> None:
    gate_backend.restore_user = UserIdentity.from_email("anna@example.com")
    manager = SessionManager(gate_backend, fast_config)
    task = asyncio.create_task(manager.restore_session())
    await asyncio.sleep(0)
    assert manager.status == SessionStatus.CHECKING
    assert manager.is_loading
    gate_backend.release()
    session = await task
    assert session.is_authenticated
    assert session.current_user.email == "anna@example.com"


@pytest.mark.asyncio
async def test_restore_auto_login_for_development() -> None:
    config = SessionConfig(auto_login_for_development=True, restore_latency=0)
    manager = SessionManager(MockIdentityBackend(latency=0), config)
    session = await manager.restore_session()
    assert session.is_authenticated
    assert session.current_user.id == "1"
    assert session.current_user.email == "user@example.com"


@pytest.mark.asyncio
async def test_restore_failure_falls_back_to_unauthenticated(fast_config) -> None:
    manager = _manager(fast_config, fail_with=ConnectionError("offline"))
    with pytest.raises(SessionRestoreFailed):
        await manager.restore_session()
    assert manager.status == SessionStatus.UNAUTHENTICATED
    assert not manager.is_busy


@pytest.mark.asyncio
async def test_restore_timeout(gate_backend) -> None:
    manager = SessionManager(gate_backend, SessionConfig(restore_timeout=0.01))
    with pytest.raises(SessionRestoreFailed):
        await manager.restore_session()
    assert manager.status == SessionStatus.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_logout_during_restore(fast_config, gate_backend) -> None:
    gate_backend.restore_user = UserIdentity.from_email("anna@example.com")
    manager = SessionManager(gate_backend, fast_config)
    task = asyncio.create_task(manager.restore_session())
    await asyncio.sleep(0)
    manager.logout()
    assert manager.status == SessionStatus.UNAUTHENTICATED
    gate_backend.release()
    with pytest.raises(SessionRestoreFailed):
        await task
    assert manager.status == SessionStatus.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_cancelled_restore_does_not_stay_checking(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    task = asyncio.create_task(manager.restore_session())
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert manager.status == SessionStatus.UNAUTHENTICATED
    assert not manager.is_busy


@pytest.mark.asyncio
async def test_observers_see_committed_state(fast_config) -> None:
    manager = _manager(fast_config)
    seen = []

    def observer(event) -> None:
        seen.append((event.reason, manager.status, event.current.status))

    def broken(event) -> None:
        raise RuntimeError("observer bug")

    manager.subscribe(broken)
    unsubscribe = manager.subscribe(observer)
    await manager.login("anna@example.com", "x")
    manager.logout()
    unsubscribe()
    await manager.login("anna@example.com", "x")
    assert seen == [
        ("login", SessionStatus.AUTHENTICATED, SessionStatus.AUTHENTICATED),
        ("logout", SessionStatus.UNAUTHENTICATED, SessionStatus.UNAUTHENTICATED),
    ]


@pytest.mark.asyncio
async def test_restore_rejected_while_signed_in(fast_config, gate_backend) -> None:
    manager = SessionManager(gate_backend, fast_config)
    gate_backend.release()
    user = await manager.login("anna@example.com", "x")
    gate_backend.error = ConnectionError("offline")
    events = []
    manager.subscribe(events.append)
    with pytest.raises(SessionRestoreFailed):
        await manager.restore_session()
    assert manager.current_user == user
    assert manager.status == SessionStatus.AUTHENTICATED
    assert events == []
    assert "restore" not in gate_backend.calls


@pytest.mark.asyncio
async def test_login_strips_surrounding_whitespace(fast_config) -> None:
    manager = _manager(fast_config)
    user = await manager.login("  anna@example.com ", "x")
    assert user.email == "anna@example.com"
    assert user.display_name == "anna"
