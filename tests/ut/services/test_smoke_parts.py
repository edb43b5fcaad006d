"""冒烟测试组件单元测试: locator / ports / process / readiness / probe"""

from __future__ import annotations

import socket
import stat
import subprocess
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from flask import Flask
from werkzeug.serving import make_server

from formulakit.core.exceptions import ReadinessTimeout, ValidationError
from formulakit.services.smoke import ports
from formulakit.services.smoke.locator import (
    Found,
    NotFound,
    expand_braces,
    find_verification_target,
)
from formulakit.services.smoke.probe import http_probe
from formulakit.services.smoke.process import managed_process, terminate
from formulakit.services.smoke.readiness import wait_until_ready


class FakeProc:
    def __init__(self, returncode=None):
        self.pid = 4242
        self.returncode = returncode
        self.kills = 0

    def poll(self):
        return self.returncode

    def kill(self):
        self.kills += 1
        self.returncode = -9

    def wait(self, timeout=None):
        return self.returncode


# =========================================================================
# locator.py
# =========================================================================


class TestLocator:
    def _exe(self, path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return path

    @pytest.mark.parametrize(("pattern", "expected"), [
        ("a/b", ["a/b"]),
        ("x/cpp{11,03}/y", ["x/cpp11/y", "x/cpp03/y"]),
        ("{a,b}{1,2}", ["a1", "a2", "b1", "b2"]),
    ])
    def test_expand_braces(self, pattern, expected) -> None:
        assert expand_braces(pattern) == expected

    def test_found_prefers_pattern_order(self, tmp_path) -> None:
        self._exe(tmp_path / "examples/cpp03/http/server/http_server")
        cpp11 = self._exe(tmp_path / "examples/cpp11/http/server/http_server")
        result = find_verification_target(tmp_path, ["examples/cpp{11,03}/http/server/http_server"])
        assert isinstance(result, Found)
        assert result.path == cpp11
        assert len(result.candidates) == 2

    def test_not_found(self, tmp_path) -> None:
        result = find_verification_target(tmp_path, ["examples/*/http_server"])
        assert isinstance(result, NotFound)
        assert result.patterns == ("examples/*/http_server",)

    def test_non_executable_ignored(self, tmp_path) -> None:
        f = tmp_path / "examples" / "http_server"
        f.parent.mkdir()
        f.write_text("data", encoding="utf-8")
        f.chmod(0o644)
        assert isinstance(find_verification_target(tmp_path, ["examples/http_server"]), NotFound)

    def test_empty_brace_branch_skipped(self, tmp_path) -> None:
        exe = self._exe(tmp_path / "x")
        result = find_verification_target(tmp_path, ["{,x}"])
        assert isinstance(result, Found) and result.path == exe

    def test_missing_share_dir(self, tmp_path) -> None:
        assert isinstance(find_verification_target(tmp_path / "gone", ["x"]), NotFound)


# =========================================================================
# ports.py
# =========================================================================


class TestPorts:
    def test_reserve_and_release(self) -> None:
        with ports.reserve_port() as port:
            assert port > 0
            assert port in ports.reserved_ports()
        assert port not in ports.reserved_ports()

    def test_reserved_port_not_handed_out_twice(self, monkeypatch) -> None:
        handed = iter([40001, 40001, 40002])
        monkeypatch.setattr(ports, "_os_free_port", lambda host: next(handed))
        a = ports.allocate_port()
        b = ports.allocate_port()
        try:
            assert (a, b) == (40001, 40002)
        finally:
            ports.release_port(a)
            ports.release_port(b)

    def test_exhausted(self, monkeypatch) -> None:
        monkeypatch.setattr(ports, "_os_free_port", lambda host: 40003)
        first = ports.allocate_port()
        try:
            with pytest.raises(OSError, match="无法分配"):
                ports.allocate_port()
        finally:
            ports.release_port(first)

    def test_concurrent_reservations_unique(self) -> None:
        barrier = threading.Barrier(16)

        def hold() -> int:
            with ports.reserve_port() as port:
                barrier.wait(timeout=10)
                return port

        with ThreadPoolExecutor(max_workers=16) as pool:
            got = list(pool.map(lambda _: hold(), range(16)))
        assert len(set(got)) == 16


# =========================================================================
# process.py
# =========================================================================


class TestManagedProcess:
    def test_killed_on_normal_exit(self, tmp_path) -> None:
        with managed_process(
            [sys.executable, "-c", "import time; time.sleep(30)"], cwd=str(tmp_path),
        ) as proc:
            assert proc.poll() is None
        assert proc.returncode is not None

    def test_killed_when_body_raises(self, tmp_path) -> None:
        created = []

        def popen(*args, **kwargs):
            created.append(FakeProc())
            return created[0]

        with pytest.raises(RuntimeError):
            with managed_process(["srv"], cwd=str(tmp_path), popen=popen):
                raise RuntimeError("probe exploded")
        assert created[0].kills == 1

    def test_already_exited_not_signalled(self) -> None:
        proc = FakeProc(returncode=0)
        terminate(proc)
        assert proc.kills == 0

    def test_cleanup_failure_logged_not_raised(self, caplog) -> None:
        class Stubborn(FakeProc):
            def wait(self, timeout=None):
                raise subprocess.TimeoutExpired("srv", timeout)

        terminate(Stubborn())
        assert "终止进程失败" in caplog.text


# =========================================================================
# readiness.py
# =========================================================================


class TestReadiness:
    def test_poll_ready(self) -> None:
        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            s.listen(1)
            port = s.getsockname()[1]
            waited = wait_until_ready(FakeProc(), "127.0.0.1", port, timeout=2)
        assert waited < 2

    def test_poll_timeout(self) -> None:
        with ports.reserve_port() as port:
            start = time.monotonic()
            with pytest.raises(ReadinessTimeout) as exc:
                wait_until_ready(FakeProc(), "127.0.0.1", port, timeout=0.3, interval=0.05)
        assert exc.value.port == port
        assert time.monotonic() - start < 2

    def test_early_exit(self) -> None:
        with pytest.raises(ReadinessTimeout, match="rc=1"):
            wait_until_ready(FakeProc(returncode=1), "127.0.0.1", 1, timeout=5)

    def test_fixed_delay(self) -> None:
        slept = []
        wait_until_ready(
            FakeProc(), "127.0.0.1", 1,
            strategy="delay", fixed_delay=5.0, timeout=10, sleep=slept.append,
        )
        assert slept == [5.0]

    def test_fixed_delay_bounded_by_timeout(self) -> None:
        slept = []
        wait_until_ready(
            FakeProc(), "127.0.0.1", 1,
            strategy="delay", fixed_delay=5.0, timeout=1.0, sleep=slept.append,
        )
        assert slept == [1.0]


# =========================================================================
# probe.py
# =========================================================================


class TestHttpProbe:
    @pytest.fixture()
    def server(self):
        app = Flask("probe_target")

        @app.route("/hello")
        def hello():
            return "hello world"

        srv = make_server("127.0.0.1", 0, app)
        t = threading.Thread(target=srv.serve_forever, daemon=True)
        t.start()
        yield f"http://127.0.0.1:{srv.server_port}"
        srv.shutdown()
        t.join(timeout=5)

    def test_not_found_body_returned(self, server) -> None:
        r = http_probe(f"{server}/", timeout=5)
        assert r.ok and r.status == 404
        assert "404 Not Found" in r.body

    def test_ok_body(self, server) -> None:
        r = http_probe(f"{server}/hello", timeout=5)
        assert (r.ok, r.status, r.body) == (True, 200, "hello world")

    def test_connection_refused(self) -> None:
        with ports.reserve_port() as port:
            r = http_probe(f"http://127.0.0.1:{port}/", timeout=1)
        assert r.ok is False and r.error

    def test_rejects_non_http(self) -> None:
        with pytest.raises(ValidationError):
            http_probe("file:///etc/passwd")
