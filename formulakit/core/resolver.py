"""配方解析器 — 将声明式配方转换为有序构建计划

解析过程是纯变换：只读取源码包做校验和比对、查询依赖安装路径，
不写文件、不启动进程、不占用网络资源。所有失败在任何构建步骤入队前抛出。

步骤顺序:
  head:   prepare (autogen) → configure → install
  stable: configure → install（源码包须先通过 sha256 校验）
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Callable

from formulakit.core.exceptions import (
    IntegrityError,
    MissingBuildDependency,
    UnresolvedDependency,
)
from formulakit.core.models import (
    BuildPlan,
    BuildStep,
    ConfigFlag,
    DependencyStage,
    Formula,
    Variant,
)
from formulakit.core.packages import PackageLookup

logger = logging.getLogger(__name__)


def sha256_of(path: Path) -> str:
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def std_configure_args(prefix: Path) -> list[ConfigFlag]:
    """所有 autotools 构建共用的标准参数"""
    return [
        ConfigFlag("prefix", str(prefix)),
        ConfigFlag("libdir", str(prefix / "lib")),
        ConfigFlag("disable-debug"),
        ConfigFlag("disable-dependency-tracking"),
    ]


class RecipeResolver:
    """配方解析器"""

    def __init__(
        self,
        lookup: PackageLookup,
        *,
        which: Callable[[str], str | None] = shutil.which,
        make_program: str = "make",
    ) -> None:
        self.lookup = lookup
        self._which = which
        self.make_program = make_program

    def resolve(
        self,
        formula: Formula,
        variant: Variant | str = Variant.STABLE,
        *,
        source_dir: str | Path,
        prefix: str | Path,
        archive: str | Path | None = None,
    ) -> BuildPlan:
        """生成构建计划

        Raises:
            ValidationError: 配方未声明该变体
            MissingBuildDependency: head 变体缺少构建期依赖
            IntegrityError: stable 源码包缺失或校验和不匹配
            UnresolvedDependency: 参数引用的依赖包未安装
        """
        variant = Variant(variant)
        spec = formula.variant_spec(variant)
        deps = formula.dependencies_for(variant)
        build_deps = [d for d in deps if d.stage == DependencyStage.BUILD]
        runtime_deps = [d for d in deps if d.stage == DependencyStage.RUN]

        if variant == Variant.HEAD:
            self._check_build_dependencies([d.name for d in build_deps])
        else:
            self._verify_archive(formula, spec.sha256, archive)

        prefix = Path(prefix).absolute()
        flags = self.resolve_flags(formula.configure_args, prefix)

        source_dir = Path(source_dir).absolute()
        work_dir = source_dir / spec.source_subdir if spec.source_subdir else source_dir
        env: dict[str, str] = {}
        if formula.cxx_std:
            env["CXXFLAGS"] = f"-std={formula.cxx_std}"
        env_items = tuple(sorted(env.items()))

        steps: list[BuildStep] = []
        if variant == Variant.HEAD and spec.prepare_cmd:
            steps.append(BuildStep("prepare", tuple(spec.prepare_cmd), str(work_dir), env_items))
        steps.append(BuildStep(
            "configure",
            ("./configure", *(f.render() for f in flags)),
            str(work_dir), env_items,
        ))
        steps.append(BuildStep("install", (self.make_program, "install"), str(work_dir), env_items))

        plan = BuildPlan(
            formula=formula,
            variant=variant,
            source_dir=source_dir,
            work_dir=work_dir,
            prefix=prefix,
            steps=steps,
            flags=flags,
            build_dependencies=build_deps,
            runtime_dependencies=runtime_deps,
            share_installs=list(formula.share_installs),
            env=env,
        )
        logger.info(
            "构建计划已生成: %s@%s (%d 步: %s)",
            formula.name, plan.version, len(steps), " → ".join(s.name for s in steps),
            extra={"formula": formula.name, "variant": variant.value},
        )
        return plan

    def resolve_flags(self, declared: list[ConfigFlag], prefix: Path) -> list[ConfigFlag]:
        """标准参数 + 声明参数，保持顺序，去除完全重复项，占位符替换为绝对路径"""
        resolved: list[ConfigFlag] = []
        for flag in [*std_configure_args(prefix), *declared]:
            if flag.package_refs:
                prefixes: dict[str, Path] = {}
                for pkg in flag.package_refs:
                    pkg_prefix = self.lookup.opt_prefix(pkg)
                    if pkg_prefix is None:
                        raise UnresolvedDependency(pkg, flag.name)
                    prefixes[pkg] = Path(pkg_prefix).absolute()
                flag = flag.with_prefixes(prefixes)
            if flag not in resolved:
                resolved.append(flag)
        return resolved

    def _check_build_dependencies(self, names: list[str]) -> None:
        missing = [
            n for n in names
            if self.lookup.opt_prefix(n) is None and self._which(n) is None
        ]
        if missing:
            raise MissingBuildDependency(missing)

    @staticmethod
    def _verify_archive(formula: Formula, expected: str, archive: str | Path | None) -> None:
        if archive is None or not Path(archive).is_file():
            raise IntegrityError(
                f"stable 变体需要已下载的源码包进行校验: {formula.name} ({archive})",
                expected=expected,
            )
        actual = sha256_of(Path(archive))
        if actual != expected:
            raise IntegrityError(
                f"校验和不匹配 {archive}: 期望 {expected}, 实际 {actual}",
                expected=expected, actual=actual,
            )
        logger.info("校验和通过: %s", Path(archive).name)
