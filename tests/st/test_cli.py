"""CLI 系统测试 — list / plan / 错误退出码"""

from __future__ import annotations

import pytest
import yaml
from click.testing import CliRunner

from formulakit.cli import main


@pytest.fixture(autouse=True)
def _keep_pytest_logging(monkeypatch):
    monkeypatch.setattr("formulakit.cli.setup_logging", lambda **kwargs: None)


@pytest.fixture()
def config_file(tmp_path, formula_data):
    formulas = tmp_path / "formulas"
    formulas.mkdir()
    (formulas / "asio.yml").write_text(yaml.safe_dump(formula_data), encoding="utf-8")
    openssl = tmp_path / "openssl"
    openssl.mkdir()
    cfg = tmp_path / "cfg.yml"
    cfg.write_text(yaml.safe_dump({
        "formulas_dir": str(formulas),
        "prefix_root": str(tmp_path / "prefix"),
        "cellar": str(tmp_path / "prefix" / "Cellar"),
        "packages": {"openssl@3": str(openssl)},
    }), encoding="utf-8")
    return str(cfg)


def _invoke(*args: str):
    return CliRunner().invoke(main, list(args))


class TestCli:
    def test_list(self, config_file) -> None:
        result = _invoke("-c", config_file, "list")
        assert result.exit_code == 0
        assert "asio" in result.output
        assert "stable,head" in result.output

    def test_plan(self, config_file, tmp_path, archive) -> None:
        result = _invoke(
            "-c", config_file, "plan", "asio",
            "--source-dir", str(tmp_path), "--archive", str(archive[0]),
        )
        assert result.exit_code == 0, result.output
        assert "asio@1.30.2" in result.output
        assert "./configure --prefix=" in result.output
        assert "make install" in result.output
        assert "运行期依赖: openssl@3" in result.output

    def test_unknown_formula(self, config_file, tmp_path) -> None:
        result = _invoke("-c", config_file, "plan", "nope", "--source-dir", str(tmp_path))
        assert result.exit_code == 1
        assert "错误 [FORMULA_NOT_FOUND]" in result.output

    def test_checksum_mismatch(self, config_file, tmp_path) -> None:
        bad = tmp_path / "bad.tar.bz2"
        bad.write_bytes(b"x")
        result = _invoke(
            "-c", config_file, "plan", "asio",
            "--source-dir", str(tmp_path), "--archive", str(bad),
        )
        assert result.exit_code == 1
        assert "INTEGRITY_ERROR" in result.output

    def test_smoke_test_not_installed(self, config_file) -> None:
        result = _invoke("-c", config_file, "test", "asio")
        assert result.exit_code == 1
        assert "未安装" in result.output
