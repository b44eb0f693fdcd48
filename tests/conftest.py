"""测试用身份后端：调用挂起，直到测试手动放行。"""
import asyncio
from typing import Optional

import pytest

from eventmap.auth.backend import IdentityBackend
from eventmap.auth.models import Credentials, UserIdentity
from eventmap.config import SessionConfig


class GateBackend(IdentityBackend):
    """每次调用都等待 gate；release() 后按 error / restore_user 返回。"""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.error: Optional[Exception] = None
        self.restore_user: Optional[UserIdentity] = None
        self.calls: list = []

    def release(self) -> None:
        self.gate.set()

    async def _wait(self, name: str) -> None:
        self.calls.append(name)
        await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def login(self, credentials: Credentials) -> UserIdentity:
        await self._wait("login")
        return UserIdentity.from_email(credentials.email)

    async def register(self, credentials: Credentials) -> UserIdentity:
        await self._wait("register")
        return UserIdentity.from_email(credentials.email)

    async def restore(self) -> Optional[UserIdentity]:
        await self._wait("restore")
        return self.restore_user


@pytest.fixture
def gate_backend() -> GateBackend:
    return GateBackend()


@pytest.fixture
def fast_config() -> SessionConfig:
    return SessionConfig(latency=0, restore_latency=0, login_timeout=5, restore_timeout=5)
