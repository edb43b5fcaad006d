"""formulakit 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import functools
import os
from typing import Any, Callable

import click

from formulakit import __version__
from formulakit.core.config import init_config
from formulakit.core.exceptions import FormulaKitError, ValidationError
from formulakit.utils.logger import setup_logging


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """业务异常转为一行提示 + 退出码 1"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except FormulaKitError as e:
            click.echo(f"错误 [{e.code}]: {e}", err=True)
            if isinstance(e, ValidationError):
                for d in e.details:
                    click.echo(f"  - {d}", err=True)
            raise SystemExit(1) from e

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="configs/default.yml", help="配置文件路径")
def main(config_path: str) -> None:
    """formulakit - 源码包配方构建与冒烟测试"""
    setup_logging(
        level=os.getenv("FORMULAKIT_LOG_LEVEL", "INFO"),
        json_output=os.getenv("FORMULAKIT_LOG_JSON", "") == "1",
    )
    init_config(config_path)


# 注册各领域子命令
from formulakit.cli.cmd_formula import register as _reg_formula  # noqa: E402

_reg_formula(main)
