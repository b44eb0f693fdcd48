"""登录与会话：恢复、登录、注册、登出。"""
from eventmap.auth.models import Credentials, Session, SessionEvent, SessionStatus, UserIdentity
from eventmap.auth.errors import (
    AuthError,
    AuthenticationCancelled,
    AuthenticationFailed,
    AuthenticationTimeout,
    IdentityBackendError,
    SessionRestoreFailed,
)
from eventmap.auth.backend import HttpIdentityBackend, IdentityBackend, MockIdentityBackend
from eventmap.auth.session import SessionManager
from eventmap.auth.signals import SessionSignals

__all__ = [
    "Credentials",
    "Session",
    "SessionEvent",
    "SessionStatus",
    "UserIdentity",
    "AuthError",
    "AuthenticationCancelled",
    "AuthenticationFailed",
    "AuthenticationTimeout",
    "IdentityBackendError",
    "SessionRestoreFailed",
    "HttpIdentityBackend",
    "IdentityBackend",
    "MockIdentityBackend",
    "SessionManager",
    "SessionSignals",
]
