"""核心数据模型

配方声明、构建计划、安装产物、冒烟测试场景及结果集中定义于此，
解析器 / 执行器 / 测试框架统一从这里导入。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from formulakit.core.exceptions import ValidationError

# =========================================================================
# 配方领域模型
# =========================================================================


class Variant(str, Enum):
    """构建变体"""
    STABLE = "stable"
    HEAD = "head"


class DependencyStage(str, Enum):
    """依赖生效阶段"""
    BUILD = "build"
    RUN = "run"
    TEST = "test"


@dataclass(frozen=True)
class Dependency:
    """依赖声明"""

    name: str
    stage: str = DependencyStage.RUN
    version: str = ""          # 版本约束，如 ">=3.0"


@dataclass
class VariantSpec:
    """变体来源定义

    stable 携带 sha256；head 携带版本库分支，不允许声明 sha256。
    """

    variant: str
    url: str
    sha256: str = ""
    branch: str = ""
    source_subdir: str = ""    # 源码树内的构建子目录
    prepare_cmd: list[str] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)


_OPT_PREFIX_RE = re.compile(r"\{opt_prefix:([^}]+)\}")
_ARG_PLACEHOLDER_RE = re.compile(r"\{(host|port|content_root)\}")


@dataclass(frozen=True)
class ConfigFlag:
    """单个 configure 参数

    value 可以包含一个或多个 {opt_prefix:<包名>} 占位符，解析阶段逐个替换为
    对应包的绝对安装路径。
    """

    name: str
    value: str | None = None
    package_refs: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: str) -> ConfigFlag:
        text = raw.strip()
        if not text.startswith("--") or len(text) <= 2:
            raise ValidationError(f"configure 参数格式不合法: {raw!r}")
        body = text[2:]
        if "=" not in body:
            return cls(name=body)
        name, value = body.split("=", 1)
        refs = tuple(dict.fromkeys(_OPT_PREFIX_RE.findall(value)))
        return cls(name=name, value=value, package_refs=refs)

    def with_prefixes(self, prefixes: dict[str, Path]) -> ConfigFlag:
        """返回占位符替换为绝对路径后的新参数，prefixes 须覆盖全部 package_refs"""
        if not self.package_refs or self.value is None:
            return self
        resolved = _OPT_PREFIX_RE.sub(lambda m: str(prefixes[m.group(1)]), self.value)
        return ConfigFlag(name=self.name, value=resolved)

    def render(self) -> str:
        if self.value is None:
            return f"--{self.name}"
        return f"--{self.name}={self.value}"


@dataclass(frozen=True)
class TestScenario:
    """冒烟测试场景 — 由配方静态配置生成，执行一次，不可变"""

    __test__ = False

    patterns: tuple[str, ...]
    args: tuple[str, ...] = ("{host}", "{port}", "{content_root}")
    expect: str = "404 Not Found"
    timeout: float = 0.0       # 就绪时限，0 表示使用全局配置
    probe_path: str = "/"
    content_root: str = ""     # 空表示使用临时目录
    readiness: str = ""        # poll | delay，空表示使用全局配置
    fixed_delay: float = 0.0

    def render_args(self, *, host: str, port: int, content_root: str) -> list[str]:
        """展开启动参数中的 {host} / {port} / {content_root}，其余花括号原样保留"""
        values = {"host": host, "port": str(port), "content_root": content_root}
        return [_ARG_PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], a) for a in self.args]


@dataclass
class Formula:
    """配方定义"""

    name: str
    version: str
    desc: str = ""
    homepage: str = ""
    license: str = ""
    stable: VariantSpec | None = None
    head: VariantSpec | None = None
    dependencies: list[Dependency] = field(default_factory=list)
    configure_args: list[ConfigFlag] = field(default_factory=list)
    share_installs: list[str] = field(default_factory=list)  # 相对源码树，复制到 share/<name>
    cxx_std: str = ""
    test: TestScenario | None = None

    def variant_spec(self, variant: Variant | str) -> VariantSpec:
        v = Variant(variant)
        spec = self.stable if v == Variant.STABLE else self.head
        if spec is None:
            raise ValidationError(f"配方 {self.name} 未声明 {v.value} 变体")
        return spec

    def dependencies_for(self, variant: Variant | str) -> list[Dependency]:
        """合并配方级与变体级依赖，按名称去重并保持声明顺序"""
        merged: dict[str, Dependency] = {}
        for dep in [*self.dependencies, *self.variant_spec(variant).dependencies]:
            merged.setdefault(dep.name, dep)
        return list(merged.values())

    def version_for(self, variant: Variant | str) -> str:
        return "HEAD" if Variant(variant) == Variant.HEAD else self.version


# =========================================================================
# 构建领域模型
# =========================================================================


@dataclass(frozen=True)
class BuildStep:
    """单个构建步骤"""

    name: str
    argv: tuple[str, ...]
    cwd: str
    env: tuple[tuple[str, str], ...] = ()

    @property
    def command(self) -> str:
        return " ".join(self.argv)


@dataclass
class BuildPlan:
    """构建计划 — 解析器输出，执行器输入"""

    formula: Formula
    variant: Variant
    source_dir: Path
    work_dir: Path
    prefix: Path
    steps: list[BuildStep] = field(default_factory=list)
    flags: list[ConfigFlag] = field(default_factory=list)
    build_dependencies: list[Dependency] = field(default_factory=list)
    runtime_dependencies: list[Dependency] = field(default_factory=list)
    share_installs: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    @property
    def version(self) -> str:
        return self.formula.version_for(self.variant)


@dataclass(frozen=True)
class InstalledArtifactTree:
    """安装产物目录 — 每次构建创建一次，之后只读"""

    name: str
    version: str
    prefix: Path

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def share_dir(self) -> Path:
        return self.prefix / "share" / self.name

    @property
    def receipt_path(self) -> Path:
        return self.prefix / "INSTALL_RECEIPT.yml"


@dataclass
class BuildResult:
    """构建结果"""

    plan: BuildPlan
    tree: InstalledArtifactTree
    executed_steps: list[str] = field(default_factory=list)
    duration: float = 0.0


# =========================================================================
# 冒烟测试领域模型
# =========================================================================


class HarnessState(str, Enum):
    """冒烟测试状态机

    idle → port_allocated → process_spawned → awaiting_ready → probed
         → (passed | failed) → terminated
    """
    IDLE = "idle"
    PORT_ALLOCATED = "port_allocated"
    PROCESS_SPAWNED = "process_spawned"
    AWAITING_READY = "awaiting_ready"
    PROBED = "probed"
    PASSED = "passed"
    FAILED = "failed"
    TERMINATED = "terminated"


@dataclass
class ProbeResult:
    """探测结果 — 断言后即丢弃"""

    ok: bool
    status: int = 0
    body: str = ""
    error: str = ""


@dataclass
class SmokeReport:
    """冒烟测试报告"""

    formula: str
    target: str = ""
    port: int = 0
    states: list[HarnessState] = field(default_factory=list)
    probe: ProbeResult | None = None
    passed: bool = False
    duration: float = 0.0
