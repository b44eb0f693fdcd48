"""登录与会话错误。界面应根据错误类型提示用户，而不是原始网络异常。"""
from typing import Optional


class AuthError(Exception):
    """会话相关错误的基类。"""

    def __init__(self, message: str, operation: str = "") -> None:
        self.message = message
        self.operation = operation
        super().__init__(message)


class AuthenticationFailed(AuthError):
    """登录/注册被后端拒绝或参数校验失败。"""


class AuthenticationTimeout(AuthenticationFailed):
    """后端在限定时间内未响应。"""


class AuthenticationCancelled(AuthenticationFailed):
    """等待期间已登出，结果被丢弃。"""


class SessionRestoreFailed(AuthError):
    """启动时无法恢复会话。"""

    def __init__(self, message: str, operation: str = "restore") -> None:
        super().__init__(message, operation)


class IdentityBackendError(Exception):
    """身份后端调用失败（网络、HTTP 状态码、响应格式）。只在后端内部抛出。"""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message if status_code is None else f"HTTP {status_code}: {message}")
