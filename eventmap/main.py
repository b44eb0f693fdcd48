"""命令行入口：恢复会话 → 可选登录/注册 → 可选登出，打印每次状态变化。"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from eventmap import __version__
from eventmap.auth.errors import AuthError
from eventmap.auth.models import SessionEvent
from eventmap.auth.session import SessionManager
from eventmap.config import SessionConfig

logger = logging.getLogger("eventmap")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="eventmap", description="会话管理演示")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--email", help="登录邮箱")
    parser.add_argument("--password", default="", help="登录密码")
    parser.add_argument("--register", action="store_true", help="注册而不是登录")
    parser.add_argument("--logout", action="store_true", help="最后登出")
    parser.add_argument("--auto-login", action="store_true", help="开发模式：启动时自动以占位用户登录")
    parser.add_argument("--latency", type=float, help="模拟后端延迟（秒）")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    return parser


def config_from_args(args: argparse.Namespace) -> SessionConfig:
    """环境变量为基础，命令行参数覆盖。"""
    config = SessionConfig.from_env()
    overrides = {}
    if args.auto_login:
        overrides["auto_login_for_development"] = True
    if args.latency is not None:
        overrides["latency"] = args.latency
        overrides["restore_latency"] = args.latency
    if overrides:
        config = SessionConfig.model_validate({**config.model_dump(), **overrides})
    return config


def _print_event(event: SessionEvent) -> None:
    user = event.current.current_user
    who = f" as {user.display_name} <{user.email}>" if user else ""
    print(f"[{event.reason}] {event.current.status.value}{who}")


async def run(manager: SessionManager, args: argparse.Namespace) -> int:
    try:
        await manager.restore_session()
    except AuthError as e:
        logger.error("%s", e.message)

    try:
        if args.email:
            if args.register:
                await manager.register(args.email, args.password)
            else:
                await manager.login(args.email, args.password)
    except AuthError as e:
        logger.error("%s: %s", e.operation, e.message)
        return 1

    if args.logout:
        manager.logout()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    manager = SessionManager(config=config_from_args(args))
    manager.subscribe(_print_event)
    return asyncio.run(run(manager, args))


if __name__ == "__main__":
    sys.exit(main())
