"""被测进程生命周期

managed_process 启动子进程并在退出上下文时强制终止（SIGKILL）并回收，
无论上下文内正常返回还是抛出异常。清理失败只记录日志，不覆盖原始结果。
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable

logger = logging.getLogger(__name__)

# 发送 SIGKILL 后等待回收的时限（秒）
REAP_TIMEOUT = 5.0

PopenFactory = Callable[..., Any]


def terminate(proc: Any) -> None:
    """强制终止并回收进程；已退出的进程只回收"""
    try:
        if proc.poll() is None:
            logger.info("终止进程 pid=%d", proc.pid, extra={"pid": proc.pid})
            proc.kill()
        proc.wait(timeout=REAP_TIMEOUT)
    except (OSError, subprocess.SubprocessError):
        logger.exception("终止进程失败 pid=%s", getattr(proc, "pid", "?"))


@contextmanager
def managed_process(
    argv: list[str],
    *,
    cwd: str,
    popen: PopenFactory = subprocess.Popen,
) -> Iterator[Any]:
    """启动子进程，保证退出时终止"""
    proc = popen(
        argv, cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    logger.info("进程已启动 pid=%d: %s (cwd=%s)", proc.pid, argv, cwd, extra={"pid": proc.pid})
    try:
        yield proc
    finally:
        terminate(proc)
