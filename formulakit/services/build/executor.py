"""构建执行器

职责:
- 按计划顺序执行构建步骤（严格串行，前一步成功才执行下一步）
- 任一步骤非零退出即中止，抛 BuildStepFailed
- 全部成功后安装附带示例到 share/<name>，写入安装回执
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path

from formulakit.core.exceptions import BuildStepFailed
from formulakit.core.models import BuildPlan, BuildResult, BuildStep, InstalledArtifactTree
from formulakit.utils.shell import CommandExecutor, get_executor
from formulakit.utils.yaml_io import dump_document

logger = logging.getLogger(__name__)


class BuildExecutor:
    """构建执行器"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        step_timeout: int | None = None,
    ) -> None:
        self._executor = executor
        if step_timeout is None:
            from formulakit.core.config import get_config
            step_timeout = get_config().step_timeout
        self.step_timeout = step_timeout

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    def execute(self, plan: BuildPlan) -> BuildResult:
        """执行构建计划，返回安装产物"""
        name = plan.formula.name
        start = time.monotonic()
        self._clear_prefix(plan.prefix)

        executed: list[str] = []
        for step in plan.steps:
            self._run_step(step, name)
            executed.append(step.name)

        tree = InstalledArtifactTree(name=name, version=plan.version, prefix=plan.prefix)
        for rel in plan.share_installs:
            self._install_share(plan.work_dir / rel, tree)
        self._write_receipt(plan, tree)

        duration = time.monotonic() - start
        logger.info("构建完成: %s@%s -> %s (%.1fs)", name, plan.version, plan.prefix, duration)
        return BuildResult(plan=plan, tree=tree, executed_steps=executed, duration=duration)

    def _run_step(self, step: BuildStep, formula: str) -> None:
        logger.info(
            "  %s: %s (cwd=%s)", step.name, step.command, step.cwd,
            extra={"formula": formula, "step": step.name},
        )
        env = {**os.environ, **dict(step.env)}
        r = self.executor.execute(
            list(step.argv), cwd=step.cwd, env=env, timeout=self.step_timeout,
        )
        if not r.success:
            logger.error("构建步骤失败 %s: %s (rc=%d)", formula, step.name, r.returncode)
            raise BuildStepFailed(step.name, r.returncode, r.output)

    @staticmethod
    def _clear_prefix(prefix: Path) -> None:
        """清除上次安装残留，保证同一计划重复执行得到相同目录"""
        if prefix.exists():
            logger.info("清除旧安装目录: %s", prefix)
            shutil.rmtree(prefix)

    @staticmethod
    def _install_share(src: Path, tree: InstalledArtifactTree) -> None:
        if not src.exists():
            raise BuildStepFailed(f"share:{src.name}", 1, f"源路径不存在: {src}")
        tree.share_dir.mkdir(parents=True, exist_ok=True)
        dest = tree.share_dir / src.name
        if src.is_dir():
            shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dest)
        logger.info("  share: %s -> %s", src, dest)

    @staticmethod
    def _write_receipt(plan: BuildPlan, tree: InstalledArtifactTree) -> None:
        # 仅记录运行期依赖，构建期依赖不进入安装产物
        dump_document(tree.receipt_path, header="formulakit 安装回执", data={
            "formula": plan.formula.name,
            "version": plan.version,
            "variant": plan.variant.value,
            "configure_args": [f.render() for f in plan.flags],
            "runtime_dependencies": [
                {"name": d.name, "version": d.version} for d in plan.runtime_dependencies
            ],
        })
