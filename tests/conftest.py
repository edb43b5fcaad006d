"""测试共享 fixture — 假工具链执行器 + 最小 "404" 验证服务

验证服务是一个没有任何路由的 Flask 应用：对 "/" 的请求返回
"404 Not Found" 页面，与 asio 示例 http_server 在空文档根下的行为一致。
http_server 本身是一个 sh 包装脚本，exec 到当前解释器运行服务。
"""

from __future__ import annotations

import hashlib
import stat
import sys
from pathlib import Path
from typing import Callable

import pytest

from formulakit.utils.shell import CommandResult

SERVER_SOURCE = '''\
import os
import sys

from flask import Flask

host, port, root = sys.argv[1], int(sys.argv[2]), os.path.abspath(sys.argv[3])
app = Flask(__name__, static_folder=root, static_url_path="/static")
app.run(host=host, port=port, use_reloader=False)
'''


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture()
def write_http_server() -> Callable[[Path], Path]:
    """在指定目录写入可执行的 http_server，返回其路径"""

    def _write(directory: Path) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        server_py = directory / "server.py"
        server_py.write_text(SERVER_SOURCE, encoding="utf-8")
        wrapper = directory / "http_server"
        wrapper.write_text(
            f'#!/bin/sh\nexec "{sys.executable}" "{server_py}" "$@"\n',
            encoding="utf-8",
        )
        _make_executable(wrapper)
        return wrapper

    return _write


@pytest.fixture()
def write_script() -> Callable[[Path, str], Path]:
    """写入可执行 sh 脚本"""

    def _write(path: Path, body: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        _make_executable(path)
        return path

    return _write


@pytest.fixture()
def archive(tmp_path) -> tuple[Path, str]:
    """伪造源码包，返回 (路径, sha256)"""
    path = tmp_path / "asio-1.30.2.tar.bz2"
    path.write_bytes(b"not really a tarball")
    return path, hashlib.sha256(path.read_bytes()).hexdigest()


class FakeExecutor:
    """记录调用顺序的假工具链，可指定某一步返回非零"""

    def __init__(self, fail_on: str = "", returncode: int = 2) -> None:
        self.fail_on = fail_on
        self.returncode = returncode
        self.calls: list[list[str]] = []

    def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
        self.calls.append(list(cmd))
        if self.fail_on and self.fail_on in cmd[0]:
            return CommandResult(self.returncode, "", f"{cmd[0]}: boom")
        return CommandResult(0, "ok", "")


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def executor_factory() -> type[FakeExecutor]:
    return FakeExecutor


@pytest.fixture()
def formula_data(archive) -> dict:
    """与 formulas/asio.yml 等价的配方字典，sha256 指向伪造源码包"""
    _, sha = archive
    return {
        "name": "asio",
        "version": "1.30.2",
        "desc": "Cross-platform C++ Library for asynchronous programming",
        "license": "BSL-1.0",
        "stable": {"url": "https://example.com/asio-1.30.2.tar.bz2", "sha256": sha},
        "head": {
            "url": "https://github.com/chriskohlhoff/asio.git",
            "branch": "master",
            "source_subdir": "asio",
            "depends_on": {"autoconf": "build", "automake": "build"},
        },
        "depends_on": {"openssl@3": "run"},
        "cxx_std": "c++11",
        "configure_args": [
            "--disable-silent-rules",
            "--with-boost=no",
            "--with-openssl={opt_prefix:openssl@3}",
        ],
        "share_installs": ["src/examples"],
        "test": {
            "patterns": ["examples/cpp{11,03}/http/server/http_server"],
            "args": ["{host}", "{port}", "."],
            "expect": "404 Not Found",
        },
    }
