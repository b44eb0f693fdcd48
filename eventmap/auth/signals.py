"""把会话状态变化转成 Qt 信号，界面直接 connect 即可刷新。"""
from typing import Callable, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from eventmap.auth.models import SessionEvent
from eventmap.auth.session import SessionManager


class SessionSignals(QObject):
    """订阅 SessionManager，并转发为信号。"""
    stateChanged = pyqtSignal(object)    # 新的 Session
    authenticated = pyqtSignal(object)   # 登录的 UserIdentity
    signedOut = pyqtSignal()

    def __init__(self, manager: Optional[SessionManager] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._unsubscribe: Optional[Callable[[], None]] = None
        if manager is not None:
            self.attach(manager)

    def attach(self, manager: SessionManager) -> None:
        self.detach()
        self._unsubscribe = manager.subscribe(self._on_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_event(self, event: SessionEvent) -> None:
        self.stateChanged.emit(event.current)
        if event.current.is_authenticated:
            if event.current.current_user != event.previous.current_user:
                self.authenticated.emit(event.current.current_user)
        elif event.previous.is_authenticated:
            self.signedOut.emit()
