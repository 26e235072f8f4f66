"""
Shell command adapter — run host commands and capture their output.

This is the most fundamental adapter. Remote scripts are never written
to disk to be executed: their content is piped to the interpreter on
stdin (``argv=["bash"], input=script``).
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time

from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


def _fmt_argv(argv: list[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class ShellCommandAdapter(Adapter):
    """Execute host commands and capture output.

    Action params:
        operation (str): 'run' (default), 'spawn', or 'which'.
        argv (list[str]): Command and arguments ('run', 'spawn').
        input (str): Text piped to the command's stdin ('run').
        env (dict[str, str]): Extra environment variables.
        unset_env (list[str]): Variables removed from the child environment.
        timeout (int): Timeout in seconds (default: 300, 'run' only).
        cwd (str): Working directory.
        log_path (str): File receiving stdout/stderr ('spawn' only).
        program (str): Executable to look up on PATH ('which').
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.param("operation", "run")
        valid_ops = {"run", "spawn", "which"}
        if operation not in valid_ops:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(valid_ops))}"

        if operation == "which":
            if not context.param("program"):
                return False, "Missing required param: 'program'"
            return True, ""

        argv = context.param("argv")
        if not argv or not isinstance(argv, list):
            return False, "Missing required param: 'argv' (non-empty list)"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.param("operation", "run")
        if operation == "which":
            return self._which(context)
        if operation == "spawn":
            return self._spawn(context)
        return self._run(context)

    # ── Operations ──────────────────────────────────────────────

    def _run(self, ctx: ExecutionContext) -> Receipt:
        argv = [str(a) for a in ctx.param("argv")]
        timeout = ctx.param("timeout", DEFAULT_TIMEOUT)
        stdin_text = ctx.param("input")

        logger.debug("CMD %s", _fmt_argv(argv))
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                input=stdin_text,
                cwd=ctx.param("cwd"),
                env=self._child_env(ctx),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"argv": argv, "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Command execution error: {e}",
                metadata={"argv": argv, "not_found": isinstance(e, FileNotFoundError)},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()
        stderr = result.stderr.strip()
        if output:
            logger.debug("STDOUT %s", output[-2000:])
        if stderr:
            logger.debug("STDERR %s", stderr[-2000:])

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={"argv": argv, "return_code": 0, "stderr": stderr[-2000:]},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=stderr[-2000:] or f"Command exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            metadata={"argv": argv, "return_code": result.returncode, "stdout": output[-2000:]},
        )

    def _spawn(self, ctx: ExecutionContext) -> Receipt:
        """Launch a detached background process (own session, output to a log)."""
        argv = [str(a) for a in ctx.param("argv")]
        log_path = ctx.param("log_path", os.devnull)

        logger.debug("SPAWN %s (log=%s)", _fmt_argv(argv), log_path)
        try:
            with open(log_path, "ab") as log:
                proc = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    cwd=ctx.param("cwd"),
                    env=self._child_env(ctx),
                    start_new_session=True,
                )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Failed to launch {argv[0]}: {e}",
                metadata={"argv": argv},
            )

        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Started {argv[0]} (pid {proc.pid})",
            metadata={"argv": argv, "pid": proc.pid, "log_path": log_path},
        )

    def _which(self, ctx: ExecutionContext) -> Receipt:
        program = ctx.param("program")
        path = shutil.which(program)
        if path is None:
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"{program} not found on PATH",
                metadata={"program": program},
            )
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=path,
            metadata={"program": program},
        )

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _child_env(ctx: ExecutionContext) -> dict[str, str]:
        env = os.environ.copy()
        env.update(ctx.param("env") or {})
        for key in ctx.param("unset_env") or []:
            env.pop(key, None)
        return env
