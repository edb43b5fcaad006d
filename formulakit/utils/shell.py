"""构建工具链调用

configure / make / autogen.sh 等外部工具通过 CommandExecutor 协议执行。
工具链对 formulakit 是不透明的协作者：只关心参数、工作目录、环境与退出码，
测试时注入假执行器即可替换整条工具链。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

# 与 shell 约定一致的特殊退出码
TIMEOUT_RETURNCODE = -1
NOT_EXECUTABLE_RETURNCODE = 126
NOT_FOUND_RETURNCODE = 127


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout + stderr 合并，用于失败诊断"""
        parts = (self.stdout.rstrip(), self.stderr.rstrip())
        return "\n".join(p for p in parts if p)


class CommandExecutor(Protocol):
    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        ...


def _text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class LocalExecutor:
    """在本机直接 exec 工具链命令，不经过 shell"""

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        start = time.monotonic()
        try:
            r = subprocess.run(
                cmd, capture_output=True, text=True,
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("工具链命令超时 (%ss): %s", timeout, shlex.join(cmd))
            return CommandResult(
                TIMEOUT_RETURNCODE, _text(e.stdout),
                _text(e.stderr) or f"超时 {timeout}s", time.monotonic() - start,
            )
        except FileNotFoundError as e:
            return CommandResult(NOT_FOUND_RETURNCODE, "", str(e))
        except PermissionError as e:
            return CommandResult(NOT_EXECUTABLE_RETURNCODE, "", str(e))

        elapsed = time.monotonic() - start
        logger.debug("%s -> rc=%d (%.1fs)", cmd[0], r.returncode, elapsed)
        return CommandResult(r.returncode, r.stdout, r.stderr, elapsed)


_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认执行器（测试或远程构建机）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor
