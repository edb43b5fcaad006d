"""就绪等待策略

- poll（默认）: 反复尝试 TCP 连接，直到成功或超过时限
- delay: 固定等待一段时间后直接继续（不校验进程是否真正监听）
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from formulakit.core.exceptions import ReadinessTimeout
from formulakit.utils.net import can_connect

logger = logging.getLogger(__name__)


def wait_until_ready(
    proc: Any,
    host: str,
    port: int,
    *,
    strategy: str = "poll",
    timeout: float = 10.0,
    interval: float = 0.1,
    fixed_delay: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """阻塞到进程可连接，返回实际等待秒数

    Raises:
        ReadinessTimeout: 超过时限仍不可连接，或进程提前退出
    """
    start = time.monotonic()
    if strategy == "delay":
        sleep(min(fixed_delay, timeout))
        if proc.poll() is not None:
            raise ReadinessTimeout(port, timeout, f"进程已退出 rc={proc.returncode}")
        return time.monotonic() - start

    deadline = start + timeout
    while True:
        rc = proc.poll()
        if rc is not None:
            raise ReadinessTimeout(port, timeout, f"进程已退出 rc={rc}")
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ReadinessTimeout(port, timeout)
        if can_connect(host, port, timeout=min(interval * 5, remaining)):
            waited = time.monotonic() - start
            logger.info("进程已就绪 %s:%d (%.2fs)", host, port, waited)
            return waited
        sleep(interval)
