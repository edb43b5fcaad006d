"""冒烟测试框架

把安装产物作为真实进程运行并通过网络探测，验证其基本可用。

流程（状态机）:
  idle → port_allocated → process_spawned → awaiting_ready → probed
       → (passed | failed) → terminated

保证:
  - 找不到验证目标时在分配端口、启动进程之前失败
  - 每次运行独立分配端口，进程存活期间端口不会被复用
  - 只要进程已启动，无论就绪等待或探测断言是否抛异常，都会被强制终止
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable

from formulakit.core.config import Config, get_config
from formulakit.core.exceptions import UnexpectedProbeResponse, VerificationTargetMissing
from formulakit.core.models import (
    HarnessState,
    InstalledArtifactTree,
    ProbeResult,
    SmokeReport,
    TestScenario,
)
from formulakit.services.smoke.locator import NotFound, find_verification_target
from formulakit.services.smoke.ports import reserve_port
from formulakit.services.smoke.process import PopenFactory, managed_process
from formulakit.services.smoke.probe import http_probe
from formulakit.services.smoke.readiness import wait_until_ready

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str, float], ProbeResult]
StateListener = Callable[[SmokeReport, HarnessState], None]


class SmokeHarness:
    """冒烟测试执行器，每次 run 独占一个端口与一个子进程"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        popen: PopenFactory = subprocess.Popen,
        probe: ProbeFn = http_probe,
    ) -> None:
        self.config = config or get_config()
        self._popen = popen
        self._probe = probe
        self._listeners: list[StateListener] = []

    def subscribe(self, listener: StateListener) -> None:
        """注册状态迁移观察者，异常路径上同样会收到通知"""
        self._listeners.append(listener)

    def run(self, tree: InstalledArtifactTree, scenario: TestScenario) -> SmokeReport:
        """执行冒烟测试，失败时抛出对应异常（进程已终止）"""
        report = SmokeReport(formula=tree.name)
        start = time.monotonic()
        self._enter(report, HarnessState.IDLE)

        found = find_verification_target(tree.share_dir, scenario.patterns)
        if isinstance(found, NotFound):
            raise VerificationTargetMissing(list(found.patterns), str(found.search_dir))
        report.target = str(found.path)

        host = self.config.smoke_host
        with reserve_port(host) as port, self._content_root(scenario, tree.name) as root:
            report.port = port
            self._enter(report, HarnessState.PORT_ALLOCATED)
            argv = [
                str(found.path),
                *scenario.render_args(host=host, port=port, content_root=root),
            ]
            spawned = False
            try:
                with managed_process(argv, cwd=root, popen=self._popen) as proc:
                    spawned = True
                    self._enter(report, HarnessState.PROCESS_SPAWNED)
                    try:
                        self._verify(proc, host, port, scenario, report)
                    except BaseException:
                        self._enter(report, HarnessState.FAILED)
                        raise
            finally:
                if spawned:
                    self._enter(report, HarnessState.TERMINATED)
                report.duration = time.monotonic() - start

        logger.info("冒烟测试通过: %s (%.1fs)", tree.name, report.duration)
        return report

    def _verify(
        self, proc: Any, host: str, port: int,
        scenario: TestScenario, report: SmokeReport,
    ) -> None:
        cfg = self.config
        self._enter(report, HarnessState.AWAITING_READY)
        wait_until_ready(
            proc, host, port,
            strategy=scenario.readiness or cfg.readiness,
            timeout=scenario.timeout or cfg.readiness_timeout,
            interval=cfg.poll_interval,
            fixed_delay=scenario.fixed_delay or cfg.fixed_delay,
        )

        result = self._probe(f"http://{host}:{port}{scenario.probe_path}", cfg.probe_timeout)
        report.probe = result
        self._enter(report, HarnessState.PROBED)
        if not result.ok or scenario.expect not in result.body:
            raise UnexpectedProbeResponse(scenario.expect, result.body, result.error)

        report.passed = True
        self._enter(report, HarnessState.PASSED)

    @staticmethod
    @contextmanager
    def _content_root(scenario: TestScenario, name: str) -> Iterator[str]:
        if scenario.content_root:
            yield str(Path(scenario.content_root).absolute())
            return
        with tempfile.TemporaryDirectory(prefix=f"{name}-test-") as tmp:
            yield tmp

    def _enter(self, report: SmokeReport, state: HarnessState) -> None:
        report.states.append(state)
        logger.debug(
            "状态迁移: %s -> %s", report.formula, state.value,
            extra={"formula": report.formula, "state": state.value, "port": report.port},
        )
        for listener in self._listeners:
            try:
                listener(report, state)
            except Exception:
                logger.exception("状态观察者执行失败: %s", state.value)
