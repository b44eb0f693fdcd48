"""身份后端：模拟实现（固定延迟，总是成功）与 HTTP 实现。

HTTP 后端只约定数据格式：
请求 {"email": ..., "password": ...}；
响应 {"id": ..., "email": ..., "displayName": ...}，出错时响应体可带 message / detail。
地址由配置提供，不预设任何路径。
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests
from pydantic import ValidationError

from eventmap.auth.errors import IdentityBackendError
from eventmap.auth.models import Credentials, UserIdentity
from eventmap.config import HTTP_TIMEOUT, MOCK_LATENCY, PLACEHOLDER_USER_ID, SessionConfig

logger = logging.getLogger(__name__)


class IdentityBackend(ABC):
    """会话管理器调用的身份服务。"""

    @abstractmethod
    async def login(self, credentials: Credentials) -> UserIdentity:
        ...

    @abstractmethod
    async def register(self, credentials: Credentials) -> UserIdentity:
        ...

    @abstractmethod
    async def restore(self) -> Optional[UserIdentity]:
        """恢复之前的会话；没有可恢复的会话时返回 None。"""

    def logout(self) -> None:
        """登出时清除后端持有的凭证（cookie、令牌）。默认无需处理。"""


class MockIdentityBackend(IdentityBackend):
    """模拟后端：等待 latency 秒后由邮箱生成身份。不校验密码，注册不查重。

    fixed_user_id 默认 "1"（所有用户同一 ID）；传 None 则按邮箱生成稳定 ID。
    fail_with 非空时每次调用在延迟后抛出该异常，用于演示失败分支。
    """

    def __init__(
        self,
        latency: float = MOCK_LATENCY,
        fixed_user_id: Optional[str] = PLACEHOLDER_USER_ID,
        fail_with: Optional[Exception] = None,
    ):
        self.latency = latency
        self.fixed_user_id = fixed_user_id
        self.fail_with = fail_with

    async def _simulate(self) -> None:
        await asyncio.sleep(self.latency)
        if self.fail_with is not None:
            raise self.fail_with

    async def login(self, credentials: Credentials) -> UserIdentity:
        await self._simulate()
        return UserIdentity.from_email(credentials.email, user_id=self.fixed_user_id)

    async def register(self, credentials: Credentials) -> UserIdentity:
        await self._simulate()
        return UserIdentity.from_email(credentials.email, user_id=self.fixed_user_id)

    async def restore(self) -> Optional[UserIdentity]:
        # 不持久化：每次启动都没有可恢复的会话
        await self._simulate()
        return None


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("detail") or response.text[:200])
    return response.text[:200]


class HttpIdentityBackend(IdentityBackend):
    """调用真实身份服务。requests 为同步调用，放到线程中执行以免阻塞事件循环。"""

    def __init__(
        self,
        login_url: str,
        register_url: str,
        restore_url: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT,
        http: Optional[requests.Session] = None,
    ):
        self.login_url = login_url
        self.register_url = register_url
        self.restore_url = restore_url
        self.timeout = timeout
        # 同一个 Session 复用 cookie，restore 才能带上登录时下发的凭证
        self._http = http or requests.Session()

    @classmethod
    def from_config(cls, config: SessionConfig) -> "HttpIdentityBackend":
        if not config.login_url or not config.register_url:
            raise ValueError("login_url and register_url are required for the HTTP backend")
        return cls(
            login_url=config.login_url,
            register_url=config.register_url,
            restore_url=config.restore_url,
            timeout=config.http_timeout,
        )

    def _parse_identity(self, response: requests.Response) -> UserIdentity:
        try:
            data = response.json()
        except ValueError:
            raise IdentityBackendError(f"响应非 JSON: {response.text[:200]}", response.status_code)
        if not isinstance(data, dict):
            raise IdentityBackendError(f"响应格式错误: {str(data)[:200]}", response.status_code)
        try:
            return UserIdentity.model_validate(data)
        except ValidationError as e:
            raise IdentityBackendError(f"用户信息字段无效（{e.error_count()} 项）", response.status_code) from e

    def _post_credentials(self, url: str, credentials: Credentials) -> UserIdentity:
        body = json.dumps({
            "email": credentials.email,
            "password": credentials.password.get_secret_value(),
        })
        logger.debug("POST %s (email=%s)", url, credentials.email)
        try:
            r = self._http.post(
                url,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityBackendError(f"请求失败: {e}") from e
        logger.debug("POST %s -> HTTP %s", url, r.status_code)
        if not 200 <= r.status_code < 300:
            raise IdentityBackendError(_error_message(r), r.status_code)
        return self._parse_identity(r)

    def _get_restore(self) -> Optional[UserIdentity]:
        try:
            r = self._http.get(self.restore_url, timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityBackendError(f"请求失败: {e}") from e
        logger.debug("GET %s -> HTTP %s", self.restore_url, r.status_code)
        if r.status_code in (204, 401):
            return None
        if not 200 <= r.status_code < 300:
            raise IdentityBackendError(_error_message(r), r.status_code)
        return self._parse_identity(r)

    async def login(self, credentials: Credentials) -> UserIdentity:
        return await asyncio.to_thread(self._post_credentials, self.login_url, credentials)

    async def register(self, credentials: Credentials) -> UserIdentity:
        return await asyncio.to_thread(self._post_credentials, self.register_url, credentials)

    async def restore(self) -> Optional[UserIdentity]:
        if not self.restore_url:
            return None
        return await asyncio.to_thread(self._get_restore)

    def logout(self) -> None:
        # 丢掉登录时下发的 cookie，之后的 restore 不会再恢复出已登出的用户
        self._http.cookies.clear()


def backend_from_config(config: SessionConfig) -> IdentityBackend:
    """配置了登录与注册地址时用 HTTP 后端，否则用模拟后端。"""
    if config.uses_http_backend:
        logger.info("using HTTP identity backend at %s", config.login_url)
        return HttpIdentityBackend.from_config(config)
    return MockIdentityBackend(latency=config.latency)
