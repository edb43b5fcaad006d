"""临时端口分配

由操作系统分配空闲端口（bind 端口 0），并登记到进程内的保留集合。
同一进程内并发运行的多个冒烟测试不会拿到同一端口；端口在关联进程
终止、上下文退出后才释放。
"""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 32

_lock = threading.Lock()
_reserved: set[int] = set()


def _os_free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return int(s.getsockname()[1])


def allocate_port(host: str = "127.0.0.1") -> int:
    """分配一个当前未被占用、也未被其他测试保留的端口"""
    for _ in range(_MAX_ATTEMPTS):
        port = _os_free_port(host)
        with _lock:
            if port not in _reserved:
                _reserved.add(port)
                logger.debug("端口已保留: %d", port)
                return port
    raise OSError(f"{_MAX_ATTEMPTS} 次尝试后仍无法分配空闲端口 ({host})")


def release_port(port: int) -> None:
    with _lock:
        _reserved.discard(port)
    logger.debug("端口已释放: %d", port)


def reserved_ports() -> set[int]:
    with _lock:
        return set(_reserved)


@contextmanager
def reserve_port(host: str = "127.0.0.1") -> Iterator[int]:
    """分配端口，退出上下文时释放"""
    port = allocate_port(host)
    try:
        yield port
    finally:
        release_port(port)
