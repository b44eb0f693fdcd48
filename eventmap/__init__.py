"""活动地图客户端：会话与登录状态管理。"""
__version__ = "0.1.0"
