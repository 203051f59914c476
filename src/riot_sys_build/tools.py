from __future__ import annotations

import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Sequence

from .common import elapsed_ms_since
from .errors import ToolInvocationError


@dataclass(frozen=True)
class ToolResult:
    tool: str
    command: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    elapsed_ms: float

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "command": self.command_line,
            "exit_code": self.exit_code,
            "elapsed_ms": self.elapsed_ms,
        }


class ExternalTool(Protocol):
    name: str

    def invoke(self, args: Sequence[str], cwd: Path | None = None) -> ToolResult:
        ...


class SubprocessTool:
    """Runs an executable synchronously and captures its output; no timeout."""

    def __init__(self, name: str, executable: str) -> None:
        self.name = name
        self.executable = executable

    def invoke(self, args: Sequence[str], cwd: Path | None = None) -> ToolResult:
        command = [self.executable, *args]
        start = time.perf_counter()
        try:
            proc = subprocess.run(command, cwd=cwd, capture_output=True, text=True)
        except OSError as exc:
            raise ToolInvocationError(self.name, shlex.join(command), None, str(exc)) from exc
        return ToolResult(
            tool=self.name,
            command=tuple(command),
            exit_code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            elapsed_ms=elapsed_ms_since(start),
        )

    def __repr__(self) -> str:
        return f"SubprocessTool({self.name!r}, {self.executable!r})"


def require_success(result: ToolResult) -> ToolResult:
    if not result.ok:
        raise ToolInvocationError(result.tool, result.command_line, result.exit_code, result.stderr)
    return result


@dataclass(frozen=True)
class Toolset:
    bindgen: ExternalTool
    c2rust: ExternalTool
    compiler: ExternalTool


def default_toolset(compiler_path: str, bindgen: str = "bindgen", c2rust: str = "c2rust") -> Toolset:
    return Toolset(
        bindgen=SubprocessTool("bindgen", bindgen),
        c2rust=SubprocessTool("c2rust", c2rust),
        compiler=SubprocessTool("cc", compiler_path),
    )
