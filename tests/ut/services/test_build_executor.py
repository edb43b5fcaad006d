"""BuildExecutor 单元测试"""

from __future__ import annotations

import os
import stat

import pytest
import yaml

from formulakit.core.exceptions import BuildStepFailed
from formulakit.core.models import Dependency, DependencyStage, Variant
from formulakit.core.registry import parse_formula
from formulakit.core.resolver import RecipeResolver
from formulakit.services.build.executor import BuildExecutor


class _Lookup:
    def __init__(self, path):
        self.path = path

    def opt_prefix(self, name):
        return self.path


class TestBuildExecutor:
    @pytest.fixture()
    def source(self, tmp_path):
        src = tmp_path / "src"
        server_dir = src / "src" / "examples" / "cpp11" / "http" / "server"
        server_dir.mkdir(parents=True)
        exe = server_dir / "http_server"
        exe.write_text("#!/bin/sh\n", encoding="utf-8")
        exe.chmod(exe.stat().st_mode | stat.S_IXUSR)
        return src

    @pytest.fixture()
    def plan(self, tmp_path, source, formula_data, archive):
        resolver = RecipeResolver(_Lookup(tmp_path), which=lambda n: n)
        return resolver.resolve(
            parse_formula(formula_data), Variant.STABLE,
            source_dir=source, prefix=tmp_path / "Cellar" / "asio" / "1.30.2",
            archive=archive[0],
        )

    def test_steps_run_in_order(self, plan, fake_executor) -> None:
        result = BuildExecutor(fake_executor, step_timeout=60).execute(plan)
        assert result.executed_steps == ["configure", "install"]
        assert [c[0] for c in fake_executor.calls] == ["./configure", "make"]
        assert fake_executor.calls[1] == ["make", "install"]

    def test_failure_aborts_remaining_steps(self, plan, executor_factory) -> None:
        ex = executor_factory(fail_on="configure", returncode=77)
        with pytest.raises(BuildStepFailed) as exc:
            BuildExecutor(ex, step_timeout=60).execute(plan)
        assert exc.value.step == "configure"
        assert exc.value.exit_code == 77
        assert len(ex.calls) == 1
        assert not plan.prefix.exists()

    def test_failure_in_last_step_skips_install(self, plan, executor_factory) -> None:
        ex = executor_factory(fail_on="make")
        with pytest.raises(BuildStepFailed, match="install"):
            BuildExecutor(ex, step_timeout=60).execute(plan)
        assert not (plan.prefix / "share").exists()

    def test_share_installed(self, plan, fake_executor) -> None:
        tree = BuildExecutor(fake_executor, step_timeout=60).execute(plan).tree
        exe = tree.share_dir / "examples" / "cpp11" / "http" / "server" / "http_server"
        assert exe.is_file()
        assert os.access(exe, os.X_OK)

    def test_missing_share_source(self, plan, fake_executor) -> None:
        plan.share_installs = ["src/nope"]
        with pytest.raises(BuildStepFailed, match="share:nope"):
            BuildExecutor(fake_executor, step_timeout=60).execute(plan)

    def test_receipt_has_only_runtime_dependencies(self, plan, fake_executor) -> None:
        plan.build_dependencies = [Dependency("autoconf", DependencyStage.BUILD)]
        tree = BuildExecutor(fake_executor, step_timeout=60).execute(plan).tree
        receipt = yaml.safe_load(tree.receipt_path.read_text(encoding="utf-8"))
        assert receipt["variant"] == "stable"
        assert [d["name"] for d in receipt["runtime_dependencies"]] == ["openssl@3"]

    def test_rerun_gives_same_tree(self, plan, fake_executor) -> None:
        ex = BuildExecutor(fake_executor, step_timeout=60)
        first = ex.execute(plan).tree
        stale = first.prefix / "stale.txt"
        stale.write_text("leftover", encoding="utf-8")
        receipt_before = first.receipt_path.read_bytes()

        second = ex.execute(plan).tree
        assert not stale.exists()
        assert second.receipt_path.read_bytes() == receipt_before

    def test_step_env_applied(self, plan) -> None:
        seen: list[dict] = []

        class EnvSpy:
            def execute(self, cmd, *, cwd=".", env=None, timeout=None):
                from formulakit.utils.shell import CommandResult
                seen.append(env or {})
                return CommandResult(0, "", "")

        BuildExecutor(EnvSpy(), step_timeout=60).execute(plan)
        assert all(e.get("CXXFLAGS") == "-std=c++11" for e in seen)
        assert "PATH" in seen[0]
