"""当前登录会话（进程内，不持久化）。

SessionManager 是唯一能改变登录状态的地方：恢复会话、登录、注册、登出。
每次状态变化都会同步通知所有订阅者，订阅者收到通知时 manager.session 已是新值。

并发约定：
- 同一时刻只允许一个异步操作（恢复/登录/注册），其余调用直接拒绝；
- 登出随时可调用，会让进行中的操作作废：其结果返回时被丢弃，不会把会话“复活”。
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from eventmap.auth.backend import IdentityBackend, backend_from_config
from eventmap.auth.errors import (
    AuthError,
    AuthenticationCancelled,
    AuthenticationFailed,
    AuthenticationTimeout,
    SessionRestoreFailed,
)
from eventmap.auth.models import (
    Credentials,
    Session,
    SessionEvent,
    SessionStatus,
    UserIdentity,
    is_valid_email,
)
from eventmap.config import SessionConfig

logger = logging.getLogger(__name__)

SessionObserver = Callable[[SessionEvent], None]
T = TypeVar("T")


async def _with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout)


class SessionManager:
    """会话状态的唯一持有者。"""

    def __init__(
        self,
        backend: Optional[IdentityBackend] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.config = config or SessionConfig()
        self.backend = backend or backend_from_config(self.config)
        self._session = Session()
        self._observers: List[SessionObserver] = []
        # 登出时递增；异步操作返回时代数已变说明结果过期
        self._generation = 0
        self._pending: Optional[str] = None

    # ---- 读取 ----

    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def current_user(self) -> Optional[UserIdentity]:
        return self._session.current_user

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._session.is_loading

    @property
    def is_busy(self) -> bool:
        """是否有恢复/登录/注册正在进行。"""
        return self._pending is not None

    # ---- 订阅 ----

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        """订阅状态变化，返回取消订阅的函数。"""
        self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: SessionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _commit(self, session: Session, reason: str) -> None:
        previous = self._session
        if previous == session:
            return
        self._session = session
        user = session.current_user
        logger.info(
            "session %s -> %s (%s%s)",
            previous.status.value,
            session.status.value,
            reason,
            f", {user.email}" if user else "",
        )
        event = SessionEvent(previous=previous, current=session, reason=reason)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                # 状态已提交，单个订阅者出错不影响其他订阅者
                logger.exception("session observer %r failed", observer)

    def _finish(self, generation: int) -> None:
        if generation == self._generation:
            self._pending = None

    # ---- 操作 ----

    def _placeholder_user(self) -> UserIdentity:
        return UserIdentity(
            id=self.config.placeholder_user_id,
            email=self.config.placeholder_email,
            display_name=self.config.placeholder_name,
        )

    async def _restore_user(self) -> Optional[UserIdentity]:
        if self.config.auto_login_for_development:
            await asyncio.sleep(self.config.restore_latency)
            return self._placeholder_user()
        return await self.backend.restore()

    async def restore_session(self) -> Session:
        """启动时调用一次：先进入 checking，结束后一定是已登录或未登录之一。

        失败（后端异常、超时）时会话落到未登录，并抛出 SessionRestoreFailed。
        已登录时不允许恢复，避免恢复失败把当前用户清掉。
        """
        if self._pending is not None:
            raise SessionRestoreFailed(f"{self._pending} 正在进行中，无法恢复会话")
        if self._session.status == SessionStatus.AUTHENTICATED:
            raise SessionRestoreFailed("已登录，无需恢复会话")
        generation = self._generation
        self._pending = "restore"
        self._commit(Session.checking(), "checking")
        try:
            user = await _with_timeout(self._restore_user(), self.config.restore_timeout)
        except asyncio.TimeoutError as e:
            logger.warning("session restore timed out after %ss", self.config.restore_timeout)
            raise SessionRestoreFailed("会话恢复超时") from e
        except Exception as e:
            logger.warning("session restore failed: %s", e)
            raise SessionRestoreFailed(f"会话恢复失败: {e}") from e
        else:
            if generation != self._generation:
                raise SessionRestoreFailed("会话恢复期间已登出，结果已丢弃")
            self._commit(Session.signed_in(user) if user else Session.signed_out(), "restore")
            return self._session
        finally:
            if generation == self._generation and self._session.status == SessionStatus.CHECKING:
                self._commit(Session.signed_out(), "restore")
            self._finish(generation)

    async def login(self, email: str, password: str) -> UserIdentity:
        """登录。成功后会话为已登录并返回用户；失败时会话保持调用前的状态。"""
        return await self._authenticate("login", email, password)

    async def register(self, email: str, password: str) -> UserIdentity:
        """注册。语义与 login 相同，调用后端的注册接口。"""
        return await self._authenticate("register", email, password)

    async def _authenticate(self, operation: str, email: str, password: str) -> UserIdentity:
        if not is_valid_email(email):
            raise AuthenticationFailed("请输入有效的邮箱地址", operation)
        if not isinstance(password, str):
            raise AuthenticationFailed("请输入密码", operation)
        if self._pending is not None:
            raise AuthenticationFailed(f"{self._pending} 正在进行中，请稍候", operation)

        email = email.strip()
        credentials = Credentials(email=email, password=password)
        call = self.backend.login if operation == "login" else self.backend.register
        generation = self._generation
        self._pending = operation
        logger.info("%s started for %s", operation, email)
        try:
            user = await _with_timeout(call(credentials), self.config.login_timeout)
        except asyncio.TimeoutError as e:
            logger.warning("%s timed out for %s after %ss", operation, email, self.config.login_timeout)
            raise AuthenticationTimeout("服务器无响应，请稍后重试", operation) from e
        except AuthError:
            raise
        except Exception as e:
            logger.warning("%s failed for %s: %s", operation, email, e)
            message = "登录失败" if operation == "login" else "注册失败"
            raise AuthenticationFailed(f"{message}: {e}", operation) from e
        finally:
            self._finish(generation)

        if generation != self._generation:
            logger.info("%s result for %s discarded after logout", operation, email)
            raise AuthenticationCancelled("操作期间已登出", operation)
        if not isinstance(user, UserIdentity):
            raise AuthenticationFailed("后端未返回用户信息", operation)
        self._commit(Session.signed_in(user), operation)
        return user

    def logout(self) -> None:
        """登出：清除用户，作废进行中的操作。重复调用无副作用。"""
        self._generation += 1
        self._pending = None
        self.backend.logout()
        if self._session.status == SessionStatus.UNAUTHENTICATED:
            return
        self._commit(Session.signed_out(), "logout")
