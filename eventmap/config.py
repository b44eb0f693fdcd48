"""全局配置：会话参数默认值，可由环境变量覆盖。"""
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# 模拟后端延迟（秒）
MOCK_LATENCY = 1.0
RESTORE_LATENCY = 1.0

# 超时（秒）
LOGIN_TIMEOUT = 15.0
RESTORE_TIMEOUT = 10.0
HTTP_TIMEOUT = 10.0

# 开发模式自动登录的占位用户
PLACEHOLDER_USER_ID = "1"
PLACEHOLDER_EMAIL = "user@example.com"
PLACEHOLDER_NAME = "Пользователь"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    if value.lower() in ("none", "off"):
        return None
    return float(value)


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


class SessionConfig(BaseModel):
    """会话管理器配置。超时为 None 表示不限时。"""
    auto_login_for_development: bool = Field(False, description="启动时直接以占位用户登录")
    latency: float = Field(MOCK_LATENCY, ge=0, description="模拟后端延迟（秒）")
    restore_latency: float = Field(RESTORE_LATENCY, ge=0, description="模拟会话恢复延迟（秒）")
    login_timeout: Optional[float] = Field(LOGIN_TIMEOUT, gt=0, description="登录/注册超时（秒）")
    restore_timeout: Optional[float] = Field(RESTORE_TIMEOUT, gt=0, description="会话恢复超时（秒）")
    placeholder_user_id: str = Field(PLACEHOLDER_USER_ID, min_length=1)
    placeholder_email: str = Field(PLACEHOLDER_EMAIL, min_length=3)
    placeholder_name: str = Field(PLACEHOLDER_NAME)
    login_url: Optional[str] = Field(None, description="真实后端登录地址")
    register_url: Optional[str] = Field(None, description="真实后端注册地址")
    restore_url: Optional[str] = Field(None, description="真实后端会话恢复地址")
    http_timeout: float = Field(HTTP_TIMEOUT, gt=0)

    model_config = ConfigDict(frozen=True)

    @property
    def uses_http_backend(self) -> bool:
        return bool(self.login_url and self.register_url)

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """从 EVENTMAP_* 环境变量读取，未设置的项用默认值。"""
        return cls(
            auto_login_for_development=_env_flag("EVENTMAP_AUTO_LOGIN"),
            latency=_env_float("EVENTMAP_LATENCY", MOCK_LATENCY),
            restore_latency=_env_float("EVENTMAP_RESTORE_LATENCY", RESTORE_LATENCY),
            login_timeout=_env_float("EVENTMAP_LOGIN_TIMEOUT", LOGIN_TIMEOUT),
            restore_timeout=_env_float("EVENTMAP_RESTORE_TIMEOUT", RESTORE_TIMEOUT),
            login_url=_env_str("EVENTMAP_LOGIN_URL"),
            register_url=_env_str("EVENTMAP_REGISTER_URL"),
            restore_url=_env_str("EVENTMAP_RESTORE_URL"),
        )

