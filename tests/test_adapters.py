"""
Tests for adapter protocol, registry, mock, and the host adapters
(shell, filesystem, docker, http).
"""

import http.server
import io
import subprocess
import threading
import time
import urllib.error
from pathlib import Path

import pytest

from blueos_installer.adapters.base import ExecutionContext
from blueos_installer.adapters.containers import docker as docker_module
from blueos_installer.adapters.containers.docker import DockerAdapter
from blueos_installer.adapters.mock import MockAdapter
from blueos_installer.adapters.net import fetch as fetch_module
from blueos_installer.adapters.net.fetch import HttpFetchAdapter, is_transient
from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.adapters.shell.command import ShellCommandAdapter
from blueos_installer.adapters.shell.filesystem import FilesystemAdapter
from blueos_installer.core.models.action import Action, Receipt
from blueos_installer.core.reliability.retry import RetryPolicy


def _ctx(action_id: str, adapter: str, **params) -> ExecutionContext:
    return ExecutionContext(action=Action(id=action_id, adapter=adapter, params=params), params=params)


# ── Mock Adapter Tests ───────────────────────────────────────────────


class TestMockAdapter:
    def test_default_success(self):
        mock = MockAdapter(adapter_name="test-mock")
        receipt = mock.execute(_ctx("op-1", "test-mock"))
        assert receipt.ok
        assert mock.call_count == 1

    def test_custom_response(self):
        mock = MockAdapter()
        mock.set_response("op-1", Receipt.success(adapter="mock", action_id="op-1", output="custom"))
        assert mock.execute(_ctx("op-1", "mock")).output == "custom"

    def test_set_failure_with_metadata(self):
        mock = MockAdapter()
        mock.set_failure("op-fail", error="Intentional failure", conflict=True)
        receipt = mock.execute(_ctx("op-fail", "mock"))
        assert receipt.failed
        assert "Intentional failure" in receipt.error
        assert receipt.metadata["conflict"] is True

    def test_set_skip(self):
        mock = MockAdapter()
        mock.set_skip("op-1", reason="absent")
        assert mock.execute(_ctx("op-1", "mock")).skipped

    def test_responses_are_copies(self):
        mock = MockAdapter()
        mock.set_output("op-1", "x")
        first = mock.execute(_ctx("op-1", "mock"))
        first.duration_ms = 99
        assert mock.execute(_ctx("op-1", "mock")).duration_ms == 0

    def test_call_log(self):
        mock = MockAdapter()
        for i in range(3):
            mock.execute(_ctx(f"op-{i}", "mock"))
        assert mock.action_ids == ["op-0", "op-1", "op-2"]
        assert mock.called("op-1")
        assert not mock.called("op-9")

    def test_reset(self):
        mock = MockAdapter()
        mock.set_failure("op-1")
        mock.execute(_ctx("op-1", "mock"))
        mock.reset()
        assert mock.call_count == 0
        assert mock.execute(_ctx("op-1", "mock")).ok

    def test_is_available(self):
        assert MockAdapter(available=True).is_available()
        assert not MockAdapter(available=False).is_available()


# ── Registry Tests ───────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        mock = MockAdapter(adapter_name="docker")
        registry.register(mock)
        assert registry.get("docker") is mock
        assert registry.get("shell") is None

    def test_unknown_adapter(self):
        receipt = AdapterRegistry().execute_action(Action(id="x", adapter="nope"))
        assert receipt.failed
        assert "No adapter registered" in receipt.error

    def test_unavailable_adapter(self):
        registry = AdapterRegistry()
        mock = MockAdapter(adapter_name="docker", available=False)
        registry.register(mock)
        receipt = registry.execute_action(Action.build("docker", "version", operation="version"))
        assert receipt.failed
        assert "not available" in receipt.error
        assert mock.call_count == 0

    def test_validation_failure(self):
        registry = AdapterRegistry()
        registry.register(ShellCommandAdapter())
        receipt = registry.execute_action(Action(id="x", adapter="shell", params={}))
        assert receipt.failed
        assert receipt.error.startswith("Validation failed")

    def test_adapter_exception_becomes_receipt(self):
        class Exploding(MockAdapter):
            def execute(self, context):
                raise RuntimeError("kaboom")

        registry = AdapterRegistry()
        registry.register(Exploding(adapter_name="boom"))
        receipt = registry.execute_action(Action(id="x", adapter="boom"))
        assert receipt.failed
        assert "kaboom" in receipt.error

    def test_duration_recorded(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="docker"))
        receipt = registry.execute_action(Action(id="docker:info", adapter="docker"))
        assert receipt.ok
        assert receipt.duration_ms >= 0

    def test_host_tools(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="docker", available=False))
        registry.register(FilesystemAdapter())
        assert registry.host_tools() == {"docker": False, "filesystem": True}


# ── Shell Adapter Tests ──────────────────────────────────────────────


class TestShellCommandAdapter:
    def test_run_success(self):
        receipt = ShellCommandAdapter().execute(_ctx("shell:echo", "shell", argv=["echo", "hello"]))
        assert receipt.ok
        assert receipt.output == "hello"
        assert receipt.metadata["return_code"] == 0

    def test_run_failure(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:fail", "shell", argv=["sh", "-c", "echo oops >&2; exit 3"])
        )
        assert receipt.failed
        assert receipt.error == "oops"
        assert receipt.metadata["return_code"] == 3

    def test_script_on_stdin(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:script", "shell", argv=["sh"], input="echo from-stdin\n")
        )
        assert receipt.ok
        assert receipt.output == "from-stdin"

    def test_unset_env(self, monkeypatch):
        monkeypatch.setenv("VERSION", "blueos-version")
        receipt = ShellCommandAdapter().execute(
            _ctx(
                "shell:env",
                "shell",
                argv=["sh", "-c", 'echo "v=${VERSION:-unset}"'],
                unset_env=["VERSION"],
            )
        )
        assert receipt.output == "v=unset"

    def test_extra_env(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:env", "shell", argv=["sh", "-c", "echo $FOO"], env={"FOO": "bar"})
        )
        assert receipt.output == "bar"

    def test_timeout(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:slow", "shell", argv=["sleep", "5"], timeout=0.1)
        )
        assert receipt.failed
        assert "timed out" in receipt.error

    def test_missing_program(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:missing", "shell", argv=["definitely-not-a-real-program-xyz"])
        )
        assert receipt.failed
        assert receipt.metadata["not_found"] is True

    def test_which_found(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:which:sh", "shell", operation="which", program="sh")
        )
        assert receipt.ok
        assert receipt.output.endswith("sh")

    def test_which_missing_is_skip(self):
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:which:x", "shell", operation="which", program="definitely-not-here-xyz")
        )
        assert receipt.skipped

    def test_spawn(self, tmp_path: Path):
        log = tmp_path / "spawn.log"
        receipt = ShellCommandAdapter().execute(
            _ctx("shell:spawn:true", "shell", operation="spawn", argv=["true"], log_path=str(log))
        )
        assert receipt.ok
        assert receipt.metadata["pid"] > 0
        assert log.exists()

    def test_spawn_missing_program(self, tmp_path: Path):
        receipt = ShellCommandAdapter().execute(
            _ctx(
                "shell:spawn:x",
                "shell",
                operation="spawn",
                argv=["definitely-not-a-real-program-xyz"],
                log_path=str(tmp_path / "x.log"),
            )
        )
        assert receipt.failed

    def test_validate(self):
        adapter = ShellCommandAdapter()
        assert adapter.validate(_ctx("a", "shell", argv=["true"]))[0]
        assert not adapter.validate(_ctx("a", "shell", argv=[]))[0]
        assert not adapter.validate(_ctx("a", "shell", operation="which"))[0]
        assert not adapter.validate(_ctx("a", "shell", operation="fork", argv=["x"]))[0]


# ── Filesystem Adapter Tests ─────────────────────────────────────────


class TestFilesystemAdapter:
    def _run(self, operation: str, path: Path, **params) -> Receipt:
        return FilesystemAdapter().execute(
            _ctx(f"filesystem:{operation}:{path}", "filesystem", operation=operation, path=str(path), **params)
        )

    def test_write_creates_parents(self, tmp_path: Path):
        target = tmp_path / "a" / "b" / "rules"
        assert self._run("write", target, content="KERNEL==\"ttyACM*\"\n").ok
        assert target.read_text() == "KERNEL==\"ttyACM*\"\n"

    def test_write_with_mode(self, tmp_path: Path):
        target = tmp_path / "dind"
        assert self._run("write", target, content="#!/bin/sh\n", mode=0o755).ok
        assert target.stat().st_mode & 0o777 == 0o755

    def test_unknown_operation_rejected(self, tmp_path: Path):
        ok, reason = FilesystemAdapter().validate(
            _ctx("filesystem:chmod", "filesystem", operation="chmod", path=str(tmp_path))
        )
        assert not ok
        assert "Unknown operation" in reason

    def test_missing_file_fails(self, tmp_path: Path):
        receipt = self._run("remove_lines", tmp_path / "absent", contains="x")
        assert receipt.failed
        assert receipt.metadata["missing"] is True

    def test_remove_lines(self, tmp_path: Path):
        target = tmp_path / "dhcpcd.conf"
        target.write_text("hostname\nnoipv4ll\n# noipv4ll again\nclientid\n")
        receipt = self._run("remove_lines", target, contains="noipv4ll")
        assert receipt.ok
        assert receipt.metadata["removed"] == 2
        assert target.read_text() == "hostname\nclientid\n"

    def test_remove_lines_none_is_skip(self, tmp_path: Path):
        target = tmp_path / "dhcpcd.conf"
        target.write_text("hostname\n")
        assert self._run("remove_lines", target, contains="noipv4ll").skipped

    def test_append_line(self, tmp_path: Path):
        target = tmp_path / "dhcpcd.conf"
        target.write_text("hostname")  # no trailing newline
        assert self._run("append_line", target, line="noipv4ll").ok
        assert target.read_text() == "hostname\nnoipv4ll\n"

    def test_insert_before(self, tmp_path: Path):
        target = tmp_path / "rc.local"
        target.write_text("#!/bin/sh -e\n# exit 0 in a comment\nexit 0\n")
        receipt = self._run(
            "insert_before", target, pattern=r"^exit 0", line="docker start blueos-bootstrap"
        )
        assert receipt.ok
        assert target.read_text() == (
            "#!/bin/sh -e\n# exit 0 in a comment\ndocker start blueos-bootstrap\nexit 0\n"
        )

    def test_insert_before_idempotent(self, tmp_path: Path):
        target = tmp_path / "rc.local"
        target.write_text("exit 0\n")
        self._run("insert_before", target, pattern=r"^exit 0", line="docker start x")
        receipt = self._run("insert_before", target, pattern=r"^exit 0", line="docker start x")
        assert receipt.skipped
        assert receipt.metadata["already_present"] is True
        assert target.read_text().count("docker start x") == 1

    def test_insert_before_pattern_missing(self, tmp_path: Path):
        target = tmp_path / "rc.local"
        target.write_text("#!/bin/sh\n")
        receipt = self._run("insert_before", target, pattern=r"^exit 0", line="docker start x")
        assert receipt.skipped
        assert receipt.metadata["pattern_missing"] is True
        assert target.read_text() == "#!/bin/sh\n"

    def test_append_unique(self, tmp_path: Path):
        target = tmp_path / "subuid"
        assert self._run("append_unique", target, line="dockremap:165536:65536").ok
        assert self._run("append_unique", target, line="dockremap:165536:65536").skipped
        assert target.read_text() == "dockremap:165536:65536\n"

    def test_validate(self):
        adapter = FilesystemAdapter()
        assert not adapter.validate(_ctx("a", "filesystem", path="/x"))[0]
        assert not adapter.validate(_ctx("a", "filesystem", operation="nuke", path="/x"))[0]
        assert not adapter.validate(_ctx("a", "filesystem", operation="write"))[0]
        assert not adapter.validate(_ctx("a", "filesystem", operation="write", path="/x"))[0]
        assert adapter.validate(_ctx("a", "filesystem", operation="write", path="/x", content=""))[0]


# ── Docker Adapter Tests ─────────────────────────────────────────────


class FakeRun:
    """Records docker argv and replays a CompletedProcess."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls: list[list[str]] = []

    def __call__(self, argv, **kwargs):
        self.calls.append(argv)
        return subprocess.CompletedProcess(argv, self.returncode, self.stdout, self.stderr)


class TestDockerAdapter:
    def _run(self, monkeypatch, fake: FakeRun, operation: str, **params) -> Receipt:
        monkeypatch.setattr(docker_module.subprocess, "run", fake)
        return DockerAdapter().execute(_ctx(f"docker:{operation}", "docker", operation=operation, **params))

    @pytest.mark.parametrize(
        "operation,params,expected",
        [
            ("version", {}, ["docker", "--version"]),
            ("info", {}, ["docker", "info"]),
            ("ps", {}, ["docker", "ps", "-a", "-q"]),
            ("ps", {"name_filter": "blueos"}, ["docker", "ps", "-a", "-q", "--filter", "name=blueos"]),
            ("stop", {"containers": ["a", "b"]}, ["docker", "stop", "a", "b"]),
            ("rm", {"containers": ["a"]}, ["docker", "rm", "a"]),
            ("image_prune", {"all_images": True}, ["docker", "image", "prune", "-af"]),
            ("image_prune", {"all_images": False}, ["docker", "image", "prune", "-f"]),
            ("pull", {"image": "r/i:t"}, ["docker", "pull", "r/i:t"]),
            ("tag", {"source": "r/i:t", "target": "r/i:f"}, ["docker", "image", "tag", "r/i:t", "r/i:f"]),
            ("create", {"args": ["--name", "x", "img"]}, ["docker", "create", "--name", "x", "img"]),
        ],
    )
    def test_argv(self, monkeypatch, operation, params, expected):
        fake = FakeRun()
        assert self._run(monkeypatch, fake, operation, **params).ok
        assert fake.calls == [expected]

    def test_ps_lists_containers(self, monkeypatch):
        receipt = self._run(monkeypatch, FakeRun(stdout="abc\ndef\n"), "ps")
        assert receipt.metadata["containers"] == ["abc", "def"]

    def test_failure(self, monkeypatch):
        receipt = self._run(
            monkeypatch, FakeRun(returncode=1, stderr="manifest unknown"), "pull", image="r/i:t"
        )
        assert receipt.failed
        assert receipt.error == "manifest unknown"

    def test_create_conflict(self, monkeypatch):
        stderr = (
            'Error response from daemon: Conflict. The container name "/blueos-bootstrap" '
            "is already in use by container \"abc\"."
        )
        receipt = self._run(monkeypatch, FakeRun(returncode=125, stderr=stderr), "create", args=["x"])
        assert receipt.failed
        assert receipt.metadata["conflict"] is True

    def test_timeout(self, monkeypatch):
        def slow(argv, **kwargs):
            raise subprocess.TimeoutExpired(argv, kwargs.get("timeout"))

        monkeypatch.setattr(docker_module.subprocess, "run", slow)
        receipt = DockerAdapter().execute(_ctx("docker:info", "docker", operation="info"))
        assert receipt.failed
        assert "timed out" in receipt.error

    def test_binary_missing(self, monkeypatch):
        def missing(argv, **kwargs):
            raise FileNotFoundError("docker")

        monkeypatch.setattr(docker_module.subprocess, "run", missing)
        receipt = DockerAdapter().execute(_ctx("docker:version", "docker", operation="version"))
        assert receipt.failed
        assert receipt.metadata["not_found"] is True

    def test_validate(self):
        adapter = DockerAdapter()
        assert not adapter.validate(_ctx("a", "docker", operation="run"))[0]
        assert not adapter.validate(_ctx("a", "docker", operation="stop"))[0]
        assert not adapter.validate(_ctx("a", "docker", operation="pull"))[0]
        assert not adapter.validate(_ctx("a", "docker", operation="tag", source="x"))[0]
        assert adapter.validate(_ctx("a", "docker", operation="info"))[0]


# ── HTTP Fetch Adapter Tests ─────────────────────────────────────────


class FakeUrlopen:
    """Raises the queued errors in order, then serves ``body``."""

    def __init__(self, errors: list[Exception] | None = None, body: bytes = b"#!/bin/sh\n"):
        self.errors = list(errors or [])
        self.body = body
        self.calls: list[tuple[str, float]] = []

    def __call__(self, req, timeout=None):
        self.calls.append((req.full_url, timeout))
        if self.errors:
            raise self.errors.pop(0)
        return io.BytesIO(self.body)


def _http_error(code: int) -> urllib.error.HTTPError:
    return urllib.error.HTTPError("https://x", code, "status", {}, None)


class _TrickleHandler(http.server.BaseHTTPRequestHandler):
    """Serves a 10-byte body one byte every 0.3s."""

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Length", "10")
        self.end_headers()
        try:
            for _ in range(10):
                self.wfile.write(b"x")
                self.wfile.flush()
                time.sleep(0.3)
        except OSError:
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def trickle_url():
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), _TrickleHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/install.sh"
    server.shutdown()
    server.server_close()


class TestHttpFetchAdapter:
    def _fetch(self, monkeypatch, fake: FakeUrlopen, **policy) -> Receipt:
        monkeypatch.setattr(fetch_module.urllib.request, "urlopen", fake)
        adapter = HttpFetchAdapter(policy=RetryPolicy(jitter=0, **policy), sleep=lambda s: None)
        url = "https://example.com/install/install.sh"
        return adapter.execute(_ctx(f"http:fetch:{url}", "http", url=url))

    def test_success(self, monkeypatch):
        fake = FakeUrlopen(body=b"echo hi\n")
        receipt = self._fetch(monkeypatch, fake, attempt_timeout=15)
        assert receipt.ok
        assert receipt.output == "echo hi\n"
        assert receipt.metadata["attempts"] == 1
        assert fake.calls == [("https://example.com/install/install.sh", 15)]

    def test_retries_transient_errors(self, monkeypatch):
        fake = FakeUrlopen(errors=[urllib.error.URLError("reset"), _http_error(503)])
        receipt = self._fetch(monkeypatch, fake)
        assert receipt.ok
        assert receipt.metadata["attempts"] == 3

    def test_gives_up_after_attempts(self, monkeypatch):
        fake = FakeUrlopen(errors=[TimeoutError("timed out")] * 10)
        receipt = self._fetch(monkeypatch, fake, attempts=6)
        assert receipt.failed
        assert receipt.metadata["attempts"] == 6
        assert len(fake.calls) == 6

    def test_not_found_is_not_retried(self, monkeypatch):
        fake = FakeUrlopen(errors=[_http_error(404)])
        receipt = self._fetch(monkeypatch, fake)
        assert receipt.failed
        assert len(fake.calls) == 1

    def test_attempts_param_override(self, monkeypatch):
        monkeypatch.setattr(
            fetch_module.urllib.request, "urlopen", FakeUrlopen(errors=[OSError("down")] * 5)
        )
        adapter = HttpFetchAdapter(policy=RetryPolicy(jitter=0), sleep=lambda s: None)
        receipt = adapter.execute(_ctx("http:fetch:u", "http", url="https://u", attempts=2))
        assert receipt.metadata["attempts"] == 2

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (urllib.error.URLError("dns"), True),
            (TimeoutError(), True),
            (ConnectionResetError(), True),
            (_http_error(500), True),
            (_http_error(429), True),
            (_http_error(408), True),
            (_http_error(404), False),
            (_http_error(403), False),
            (ValueError("bad url"), False),
        ],
    )
    def test_is_transient(self, exc, expected):
        assert is_transient(exc) is expected

    def test_validate(self):
        adapter = HttpFetchAdapter()
        assert not adapter.validate(_ctx("a", "http"))[0]
        assert not adapter.validate(_ctx("a", "http", url="ftp://x"))[0]
        assert adapter.validate(_ctx("a", "http", url="https://x"))[0]

    def test_attempt_capped_by_wall_clock(self, trickle_url):
        adapter = HttpFetchAdapter(policy=RetryPolicy(attempts=1, attempt_timeout=1.0, jitter=0))
        start = time.monotonic()
        receipt = adapter.execute(_ctx(f"http:fetch:{trickle_url}", "http", url=trickle_url))
        elapsed = time.monotonic() - start
        assert receipt.failed
        assert "exceeded 1s" in receipt.error
        assert elapsed < 2.5

    def test_slow_body_within_cap(self, trickle_url):
        adapter = HttpFetchAdapter(policy=RetryPolicy(attempts=1, attempt_timeout=10.0, jitter=0))
        receipt = adapter.execute(_ctx(f"http:fetch:{trickle_url}", "http", url=trickle_url))
        assert receipt.ok
        assert receipt.output == "x" * 10
