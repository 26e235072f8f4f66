"""
Docker adapter — container engine operations.

Provides the engine operations the installer needs through the adapter
protocol. Uses the docker CLI — never the Docker API directly — so the
same adapter works against a host engine and a nested one.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Per-operation default timeouts (seconds)
_TIMEOUTS: dict[str, int] = {
    "version": 15,
    "info": 15,
    "ps": 30,
    "stop": 120,
    "rm": 60,
    "image_prune": 600,
    "pull": 1800,
    "tag": 30,
    "create": 60,
}

_REQUIRED: dict[str, tuple[str, ...]] = {
    "stop": ("containers",),
    "rm": ("containers",),
    "pull": ("image",),
    "tag": ("source", "target"),
    "create": ("args",),
}

# Markers the engine prints when a container name is taken
_CONFLICT_MARKERS = ("is already in use", "Conflict.")


class DockerAdapter(Adapter):
    """Docker engine operations.

    Action params:
        operation (str): One of 'version', 'info', 'ps', 'stop', 'rm',
                         'image_prune', 'pull', 'tag', 'create'.
        containers (list[str]): Container ids ('stop', 'rm').
        name_filter (str): Restrict 'ps' to matching names.
        all_images (bool): Prune all unused images, not just dangling ('image_prune').
        image (str): Image reference ('pull').
        source (str), target (str): References ('tag').
        args (list[str]): Arguments after 'docker create' ('create').
        timeout (int): Override the operation's default timeout.
    """

    def __init__(self, binary: str = "docker"):
        self._binary = binary

    @property
    def name(self) -> str:
        return "docker"

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.param("operation", "")
        if operation not in _TIMEOUTS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_TIMEOUTS))}"
        missing = context.missing(*_REQUIRED.get(operation, ()))
        if missing:
            return False, f"Missing required params for {operation}: {', '.join(missing)}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.param("operation")
        args = self._build_args(context)
        timeout = context.param("timeout", _TIMEOUTS[operation])

        argv = [self._binary, *args]
        logger.debug("CMD %s", " ".join(argv))
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"docker {args[0]} timed out after {timeout}s",
                metadata={"operation": operation},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Docker error: {e}",
                metadata={"operation": operation, "not_found": isinstance(e, FileNotFoundError)},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode != 0:
            metadata = {"operation": operation, "return_code": result.returncode}
            if operation == "create" and any(m in stderr for m in _CONFLICT_MARKERS):
                metadata["conflict"] = True
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=stderr or f"docker {args[0]} failed (exit {result.returncode})",
                duration_ms=elapsed_ms,
                metadata=metadata,
            )

        metadata = {"operation": operation}
        if operation == "ps":
            metadata["containers"] = stdout.split()
        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=stdout,
            duration_ms=elapsed_ms,
            metadata=metadata,
        )

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _build_args(ctx: ExecutionContext) -> list[str]:
        operation = ctx.param("operation")
        if operation == "version":
            return ["--version"]
        if operation == "info":
            return ["info"]
        if operation == "ps":
            args = ["ps", "-a", "-q"]
            if ctx.param("name_filter"):
                args += ["--filter", f"name={ctx.param('name_filter')}"]
            return args
        if operation == "stop":
            return ["stop", *ctx.param("containers")]
        if operation == "rm":
            return ["rm", *ctx.param("containers")]
        if operation == "image_prune":
            return ["image", "prune", "-af" if ctx.param("all_images", True) else "-f"]
        if operation == "pull":
            return ["pull", ctx.param("image")]
        if operation == "tag":
            return ["image", "tag", ctx.param("source"), ctx.param("target")]
        return ["create", *ctx.param("args")]
