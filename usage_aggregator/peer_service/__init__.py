"""
被扫描端服务（对其他实例提供 /status、/latest、/usage）
"""

from .app import create_peer_app, UsageFile

__all__ = ["create_peer_app", "UsageFile"]
