"""配方服务 — 解析 / 构建 / 冒烟测试编排

  plan:    配方 + 变体 → 构建计划（纯解析，不执行）
  install: 解析 → 执行 → 链接 opt/<name>
  test:    对已安装产物运行配方声明的冒烟测试

安装目录: <cellar>/<name>/<version>，head 变体 version 为 HEAD。
"""

from __future__ import annotations

import logging
from pathlib import Path

from formulakit.core.config import Config, get_config
from formulakit.core.exceptions import FormulaNotFoundError, ValidationError
from formulakit.core.models import (
    BuildPlan,
    BuildResult,
    InstalledArtifactTree,
    SmokeReport,
    Variant,
)
from formulakit.core.packages import PrefixLookup
from formulakit.core.registry import FormulaRegistry
from formulakit.core.resolver import RecipeResolver
from formulakit.services.build.executor import BuildExecutor
from formulakit.services.smoke.harness import SmokeHarness
from formulakit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class FormulaService:
    """配方生命周期管理"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        registry: FormulaRegistry | None = None,
        lookup: PrefixLookup | None = None,
        executor: CommandExecutor | None = None,
        harness: SmokeHarness | None = None,
    ) -> None:
        self.config = config or get_config()
        self.registry = registry or FormulaRegistry(self.config.formulas_dir)
        self.lookup = lookup or PrefixLookup(self.config.prefix_root, self.config.packages)
        self.resolver = RecipeResolver(self.lookup, make_program=self.config.make_program)
        self.builder = BuildExecutor(executor, step_timeout=self.config.step_timeout)
        self.harness = harness or SmokeHarness(self.config)

    def keg_path(self, name: str, version: str) -> Path:
        return Path(self.config.cellar) / name / version

    def plan(
        self, name: str, variant: Variant | str = Variant.STABLE, *,
        source_dir: str | Path, archive: str | Path | None = None,
    ) -> BuildPlan:
        formula = self.registry.get(name)
        return self.resolver.resolve(
            formula, variant,
            source_dir=source_dir,
            prefix=self.keg_path(name, formula.version_for(variant)),
            archive=archive,
        )

    def install(
        self, name: str, variant: Variant | str = Variant.STABLE, *,
        source_dir: str | Path, archive: str | Path | None = None,
    ) -> BuildResult:
        plan = self.plan(name, variant, source_dir=source_dir, archive=archive)
        result = self.builder.execute(plan)
        self.lookup.link(name, result.tree.prefix)
        return result

    def installed_tree(self, name: str, variant: Variant | str = Variant.STABLE) -> InstalledArtifactTree:
        formula = self.registry.get(name)
        version = formula.version_for(variant)
        prefix = self.keg_path(name, version)
        if not prefix.is_dir():
            raise FormulaNotFoundError(f"未安装: {name}@{version} ({prefix})")
        return InstalledArtifactTree(name=name, version=version, prefix=prefix.absolute())

    def test(self, name: str, variant: Variant | str = Variant.STABLE) -> SmokeReport:
        formula = self.registry.get(name)
        if formula.test is None:
            raise ValidationError(f"配方 {name} 未声明冒烟测试")
        tree = self.installed_tree(name, variant)
        return self.harness.run(tree, formula.test)
