"""
Filesystem adapter — host file writes and line-level edits.

Provides a receipt-returning interface for the host configuration
files the installer touches. Line edits are idempotent: re-applying
an edit that is already in place returns a 'skipped' receipt.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.core.models.action import Receipt

logger = logging.getLogger(__name__)

_VALID_OPS = {
    "write",
    "remove_lines",
    "append_line",
    "insert_before",
    "append_unique",
}

# Per-operation required params (beyond 'path')
_REQUIRED: dict[str, tuple[str, ...]] = {
    "write": ("content",),
    "remove_lines": ("contains",),
    "append_line": ("line",),
    "insert_before": ("pattern", "line"),
    "append_unique": ("line",),
}


def _lines(text: str) -> list[str]:
    return text.splitlines()


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n" if lines else ""


class FilesystemAdapter(Adapter):
    """File operations with receipts.

    Action params:
        operation (str): One of 'write', 'remove_lines', 'append_line',
            'insert_before', 'append_unique'.
        path (str): Target path (absolute).
        content (str): Content to write ('write').
        mode (int): Permission bits applied after 'write' (optional).
        contains (str): Substring selecting lines to delete ('remove_lines').
        line (str): Line to add ('append_line', 'insert_before', 'append_unique').
        pattern (str): Regex; 'line' goes before the first matching line
            ('insert_before').
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.param("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in _VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_VALID_OPS))}"

        if not context.param("path"):
            return False, "Missing required param: 'path'"

        for key in _REQUIRED.get(operation, ()):
            if key not in context.params:
                return False, f"Missing required param: '{key}' for {operation} operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.param("operation")
        target = Path(context.param("path"))

        handler = getattr(self, f"_{operation}")
        try:
            return handler(context, target)
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )

    # ── Operations ──────────────────────────────────────────────

    def _write(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.param("content")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        mode = ctx.param("mode")
        if mode is not None:
            target.chmod(mode)
        logger.debug("Wrote %d bytes to %s", len(content), target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Written {len(content)} bytes to {target}",
            metadata={"path": str(target), "size": len(content)},
        )

    def _remove_lines(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.is_file():
            return self._missing(ctx, target)
        needle = ctx.param("contains")
        lines = _lines(target.read_text(encoding="utf-8"))
        kept = [line for line in lines if needle not in line]
        removed = len(lines) - len(kept)
        if removed == 0:
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"No lines containing '{needle}' in {target}",
                metadata={"path": str(target), "removed": 0},
            )
        target.write_text(_join(kept), encoding="utf-8")
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {removed} line(s) from {target}",
            metadata={"path": str(target), "removed": removed},
        )

    def _append_line(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.is_file():
            return self._missing(ctx, target)
        line = ctx.param("line")
        lines = _lines(target.read_text(encoding="utf-8"))
        lines.append(line)
        target.write_text(_join(lines), encoding="utf-8")
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Appended '{line}' to {target}",
            metadata={"path": str(target)},
        )

    def _insert_before(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.is_file():
            return self._missing(ctx, target)
        line = ctx.param("line")
        pattern = re.compile(ctx.param("pattern"))
        lines = _lines(target.read_text(encoding="utf-8"))

        if line in lines:
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"'{line}' already present in {target}",
                metadata={"path": str(target), "already_present": True},
            )

        for index, existing in enumerate(lines):
            if pattern.search(existing):
                lines.insert(index, line)
                target.write_text(_join(lines), encoding="utf-8")
                return Receipt.success(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    output=f"Inserted '{line}' at line {index + 1} of {target}",
                    metadata={"path": str(target), "line_number": index + 1},
                )

        return Receipt.skip(
            adapter=self.name,
            action_id=ctx.action.id,
            reason=f"No line matching '{pattern.pattern}' in {target}",
            metadata={"path": str(target), "pattern_missing": True},
        )

    def _append_unique(self, ctx: ExecutionContext, target: Path) -> Receipt:
        line = ctx.param("line")
        existing = _lines(target.read_text(encoding="utf-8")) if target.is_file() else []
        if line in existing:
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"'{line}' already present in {target}",
                metadata={"path": str(target), "already_present": True},
            )
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(_join(existing + [line]), encoding="utf-8")
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Appended '{line}' to {target}",
            metadata={"path": str(target)},
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _missing(self, ctx: ExecutionContext, target: Path) -> Receipt:
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=f"File not found: {target}",
            metadata={"path": str(target), "missing": True},
        )
