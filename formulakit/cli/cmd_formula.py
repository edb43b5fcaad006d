"""CLI — 配方命令（列表、计划、安装、冒烟测试）"""

from __future__ import annotations

import click

from formulakit.cli import handle_errors
from formulakit.core.models import Variant
from formulakit.services.formula_service import FormulaService


def register(group: click.Group) -> None:
    group.add_command(list_formulas)
    group.add_command(plan)
    group.add_command(install)
    group.add_command(smoke_test)


def _variant(head: bool) -> Variant:
    return Variant.HEAD if head else Variant.STABLE


_head_option = click.option("--head", is_flag=True, help="使用版本库 head 变体")
_source_option = click.option(
    "--source-dir", required=True, type=click.Path(exists=True, file_okay=False),
    help="已解压的源码目录",
)
_archive_option = click.option(
    "--archive", default=None, type=click.Path(dir_okay=False),
    help="已下载的源码包（stable 变体校验 sha256）",
)


@click.command(name="list")
@handle_errors
def list_formulas() -> None:
    """列出所有配方"""
    items = FormulaService().registry.list_all()
    if not items:
        click.echo("没有可用的配方。")
        return
    for f in items:
        click.echo(f"  {f['name']:20s} {f['version']:12s} [{f['variants']}]  {f['desc']}")


@click.command()
@click.argument("name")
@_head_option
@_source_option
@_archive_option
@handle_errors
def plan(name: str, head: bool, source_dir: str, archive: str | None) -> None:
    """输出构建计划（不执行）"""
    p = FormulaService().plan(name, _variant(head), source_dir=source_dir, archive=archive)
    click.echo(f"{p.formula.name}@{p.version} -> {p.prefix}")
    for i, step in enumerate(p.steps, 1):
        click.echo(f"  {i}. {step.name:10s} {step.command}  (cwd={step.cwd})")
    if p.runtime_dependencies:
        click.echo("运行期依赖: " + ", ".join(d.name for d in p.runtime_dependencies))


@click.command()
@click.argument("name")
@_head_option
@_source_option
@_archive_option
@handle_errors
def install(name: str, head: bool, source_dir: str, archive: str | None) -> None:
    """解析、构建并安装配方"""
    result = FormulaService().install(
        name, _variant(head), source_dir=source_dir, archive=archive,
    )
    click.echo(f"安装完成: {name}@{result.tree.version} ({result.duration:.1f}s)")
    click.echo(f"安装路径: {result.tree.prefix}")


@click.command(name="test")
@click.argument("name")
@_head_option
@handle_errors
def smoke_test(name: str, head: bool) -> None:
    """对已安装配方运行冒烟测试"""
    report = FormulaService().test(name, _variant(head))
    click.echo(f"冒烟测试通过: {name} (port={report.port}, {report.duration:.1f}s)")
    click.echo(f"验证目标: {report.target}")
