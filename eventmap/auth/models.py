"""会话与用户身份数据模型。"""
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "eventmap.local")


def is_valid_email(email: str) -> bool:
    """邮箱至少包含 @，且 @ 两侧非空。"""
    if not isinstance(email, str):
        return False
    local, sep, domain = email.strip().partition("@")
    return bool(sep and local and domain)


class SessionStatus(str, Enum):
    """会话状态。"""
    UNKNOWN = "unknown"                  # 进程刚启动
    CHECKING = "checking"                # 正在恢复会话
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class UserIdentity(BaseModel):
    """已登录用户的最小身份信息。"""
    id: str = Field(..., min_length=1, description="用户唯一 ID")
    email: str = Field(..., description="登录邮箱")
    display_name: str = Field(..., alias="displayName", description="显示名")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if not is_valid_email(value):
            raise ValueError(f"invalid email: {value!r}")
        return value

    @classmethod
    def from_email(cls, email: str, user_id: Optional[str] = None) -> "UserIdentity":
        """由邮箱确定性地生成身份：@ 前的部分作为显示名。"""
        if user_id is None:
            user_id = str(uuid.uuid5(_ID_NAMESPACE, email.strip().lower()))
        return cls(id=user_id, email=email, display_name=email.split("@")[0])


class Credentials(BaseModel):
    """登录/注册凭据。密码用 SecretStr，避免出现在日志与 repr 中。"""
    email: str
    password: SecretStr

    model_config = ConfigDict(frozen=True)


class Session(BaseModel):
    """当前进程的登录状态：current_user 非空当且仅当已登录。"""
    status: SessionStatus = SessionStatus.UNKNOWN
    current_user: Optional[UserIdentity] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_invariant(self) -> "Session":
        has_user = self.current_user is not None
        if has_user != (self.status == SessionStatus.AUTHENTICATED):
            raise ValueError(
                f"session status {self.status.value} inconsistent with current_user={self.current_user!r}"
            )
        return self

    @classmethod
    def checking(cls) -> "Session":
        return cls(status=SessionStatus.CHECKING)

    @classmethod
    def signed_in(cls, user: UserIdentity) -> "Session":
        return cls(status=SessionStatus.AUTHENTICATED, current_user=user)

    @classmethod
    def signed_out(cls) -> "Session":
        return cls(status=SessionStatus.UNAUTHENTICATED)

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        """启动后尚未确定登录状态。"""
        return self.status in (SessionStatus.UNKNOWN, SessionStatus.CHECKING)


class SessionEvent(BaseModel):
    """状态变化通知：变化前后的会话与触发原因（restore/login/register/logout）。"""
    previous: Session
    current: Session
    reason: str

    model_config = ConfigDict(frozen=True)
