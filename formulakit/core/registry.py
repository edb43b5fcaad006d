"""配方注册表 — 从 formulas/<name>.yml 加载配方定义

配方文件格式::

    name: asio
    version: 1.30.2
    stable:
      url: https://.../asio-1.30.2.tar.bz2
      sha256: 9f12...
    head:
      url: https://github.com/chriskohlhoff/asio.git
      branch: master
      source_subdir: asio
      depends_on: {autoconf: build, automake: build}
    depends_on: {openssl@3: run}
    configure_args:
      - --with-openssl={opt_prefix:openssl@3}
    share_installs: [src/examples]
    test:
      patterns: ["examples/cpp{11,03}/http/server/http_server"]

加载时做完整校验，所有问题汇总到 ValidationError.details。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from formulakit.core.exceptions import FormulaNotFoundError, ValidationError
from formulakit.core.models import (
    ConfigFlag,
    Dependency,
    DependencyStage,
    Formula,
    TestScenario,
    Variant,
    VariantSpec,
)
from formulakit.utils.net import validate_url_scheme
from formulakit.utils.yaml_io import load_document

logger = logging.getLogger(__name__)

_HEAD_SCHEMES = frozenset(("http", "https", "git", "ssh"))
_STAGES = {s.value for s in DependencyStage}
# 开头或花括号分支内以 / 起始
_ABSOLUTE_RE = re.compile(r"(^|[{,])/")


def _parse_dependencies(raw: Any, errors: list[str], where: str) -> list[Dependency]:
    """支持三种写法: [name, ...] / {name: stage} / {name: {stage, version}}"""
    if not raw:
        return []
    items: list[tuple[str, Any]]
    if isinstance(raw, list):
        items = [(str(n), DependencyStage.RUN.value) for n in raw]
    elif isinstance(raw, dict):
        items = list(raw.items())
    else:
        errors.append(f"{where}.depends_on 必须是列表或映射")
        return []

    deps: list[Dependency] = []
    for name, info in items:
        version = ""
        if isinstance(info, dict):
            stage = info.get("stage", DependencyStage.RUN.value)
            version = str(info.get("version", ""))
        else:
            stage = info or DependencyStage.RUN.value
        if stage not in _STAGES:
            errors.append(f"{where}.depends_on.{name}: 未知阶段 '{stage}'")
            continue
        deps.append(Dependency(name=str(name), stage=DependencyStage(stage), version=version))
    return deps


def _parse_variant(
    variant: Variant, raw: Any, errors: list[str],
) -> VariantSpec | None:
    if raw is None:
        return None
    where = variant.value
    if not isinstance(raw, dict) or not raw.get("url"):
        errors.append(f"{where}.url 为必填")
        return None

    url = str(raw["url"])
    sha256 = str(raw.get("sha256", "")).lower()
    branch = str(raw.get("branch", ""))
    try:
        if variant == Variant.STABLE:
            validate_url_scheme(url, context=where)
        else:
            validate_url_scheme(url, context=where, allowed=_HEAD_SCHEMES)
    except ValidationError as e:
        errors.append(str(e))

    if variant == Variant.STABLE:
        if len(sha256) != 64:
            errors.append("stable.sha256 必须是 64 位十六进制摘要")
    else:
        if sha256:
            errors.append("head 变体不能声明 sha256（校验和仅对 stable 有意义）")
        if not branch:
            errors.append("head.branch 为必填")

    prepare = raw.get("prepare_cmd")
    if prepare is None:
        prepare = ["./autogen.sh"] if variant == Variant.HEAD else []
    elif isinstance(prepare, str):
        prepare = prepare.split()

    return VariantSpec(
        variant=variant,
        url=url,
        sha256=sha256,
        branch=branch,
        source_subdir=str(raw.get("source_subdir", "")),
        prepare_cmd=[str(p) for p in prepare],
        dependencies=_parse_dependencies(raw.get("depends_on"), errors, where),
    )


def _parse_test(raw: Any, errors: list[str]) -> TestScenario | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        errors.append("test 必须是映射")
        return None
    patterns = raw.get("patterns") or []
    if isinstance(patterns, str):
        patterns = [patterns]
    if not patterns:
        errors.append("test.patterns 为必填")
        return None
    patterns = [str(p) for p in patterns]
    for p in patterns:
        # 模式相对 share/<name> 求值，不允许为空或越出该目录
        if not p.strip() or _ABSOLUTE_RE.search(p) or ".." in re.split(r"[/{},]", p):
            errors.append(f"test.patterns 须为 share/<name> 下的相对路径: {p!r}")
    kwargs: dict[str, Any] = {"patterns": tuple(patterns)}
    if "args" in raw:
        kwargs["args"] = tuple(str(a) for a in raw["args"])
    for key in ("expect", "probe_path", "content_root", "readiness"):
        if key in raw:
            kwargs[key] = str(raw[key])
    for key in ("timeout", "fixed_delay"):
        if key in raw:
            kwargs[key] = float(raw[key])
    if kwargs.get("readiness", "") not in ("", "poll", "delay"):
        errors.append(f"test.readiness 仅支持 poll/delay: {kwargs['readiness']}")
    return TestScenario(**kwargs)


def parse_formula(data: dict[str, Any], source: str = "") -> Formula:
    """将配方字典解析为 Formula，校验失败抛 ValidationError"""
    errors: list[str] = []
    name = str(data.get("name", ""))
    version = str(data.get("version", ""))
    if not name:
        errors.append("name 为必填")
    if not version:
        errors.append("version 为必填")

    stable = _parse_variant(Variant.STABLE, data.get("stable"), errors)
    head = _parse_variant(Variant.HEAD, data.get("head"), errors)
    if data.get("stable") is None and data.get("head") is None:
        errors.append("至少声明 stable 或 head 变体之一")

    flags: list[ConfigFlag] = []
    for raw_flag in data.get("configure_args") or []:
        try:
            flags.append(ConfigFlag.parse(str(raw_flag)))
        except ValidationError as e:
            errors.append(str(e))

    formula = Formula(
        name=name,
        version=version,
        desc=str(data.get("desc", "")),
        homepage=str(data.get("homepage", "")),
        license=str(data.get("license", "")),
        stable=stable,
        head=head,
        dependencies=_parse_dependencies(data.get("depends_on"), errors, "formula"),
        configure_args=flags,
        share_installs=[str(p) for p in data.get("share_installs") or []],
        cxx_std=str(data.get("cxx_std", "")),
        test=_parse_test(data.get("test"), errors),
    )
    if errors:
        label = f" ({source})" if source else ""
        raise ValidationError(f"配方校验失败{label}: {name or '?'}", details=errors)
    return formula


class FormulaRegistry:
    """配方注册表 — 目录下每个 <name>.yml 一个配方"""

    def __init__(self, formulas_dir: str | Path = "") -> None:
        if not formulas_dir:
            from formulakit.core.config import get_config
            formulas_dir = get_config().formulas_dir
        self.formulas_dir = Path(formulas_dir)

    def _path(self, name: str) -> Path:
        return self.formulas_dir / f"{name}.yml"

    def get(self, name: str) -> Formula:
        """加载指定配方"""
        path = self._path(name)
        if not path.exists():
            raise FormulaNotFoundError(f"配方不存在: {name} ({path})")
        formula = parse_formula(load_document(path, kind="配方"), source=str(path))
        if formula.name != name:
            raise ValidationError(
                f"配方文件名与 name 不一致: {path.name} vs {formula.name}",
            )
        return formula

    def names(self) -> list[str]:
        if not self.formulas_dir.exists():
            logger.warning("配方目录不存在: %s", self.formulas_dir)
            return []
        return sorted(p.stem for p in self.formulas_dir.glob("*.yml"))

    def list_all(self) -> list[dict[str, str]]:
        """列出所有配方摘要"""
        results = []
        for name in self.names():
            f = self.get(name)
            variants = [v.value for v in Variant if getattr(f, v.value) is not None]
            results.append({
                "name": f.name,
                "version": f.version,
                "variants": ",".join(variants),
                "desc": f.desc,
            })
        return results
