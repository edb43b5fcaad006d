"""集中配置管理

构建目录、工具链程序、冒烟测试时限等统一从此处读取。
支持从 YAML 文件加载 + 编程式覆盖；配置以值的形式传入解析器与执行器，
模块之间不共享可变状态。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from formulakit.core.exceptions import ConfigError, ValidationError
from formulakit.utils.yaml_io import load_document

logger = logging.getLogger(__name__)

_READINESS_STRATEGIES = ("poll", "delay")


@dataclass
class Config:
    """框架全局配置"""

    # 目录
    formulas_dir: str = "formulas"
    prefix_root: str = "data/prefix"
    cellar: str = "data/prefix/Cellar"

    # 构建
    make_program: str = "make"
    step_timeout: int = 3600

    # 冒烟测试
    smoke_host: str = "127.0.0.1"
    readiness: str = "poll"          # poll | delay
    readiness_timeout: float = 10.0
    poll_interval: float = 0.1
    fixed_delay: float = 5.0
    probe_timeout: float = 10.0

    # 预装依赖包: 名称 -> 安装路径
    packages: dict[str, str] = field(default_factory=dict)

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.readiness not in _READINESS_STRATEGIES:
            raise ConfigError(
                f"readiness 仅支持 {'/'.join(_READINESS_STRATEGIES)}: {self.readiness}"
            )

    @classmethod
    def from_file(cls, path: str = "configs/default.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_document(path, kind="配置")
        except ValidationError as e:
            raise ConfigError(str(e)) from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件内容无效 {path}: {e}") from e
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        from dataclasses import asdict
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/default.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
