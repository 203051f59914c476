from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from .common import remove_if_exists, write_json
from .errors import ArtifactIOError, UndefinedMacroError
from .toolchain import CompileEnvironment
from .tools import ExternalTool, ToolResult, Toolset, require_success

SYNTHETIC_SOURCE_NAME = "riot-c2rust.h"
EXPANDED_SOURCE_NAME = "riot-c2rust-expanded.c"
COMPILE_COMMANDS_NAME = "compile_commands.json"
BINDINGS_NAME = "bindings.rs"
PLACEHOLDER_COMPILER = "any-cc"

BINDGEN_OPTIONS = (
    "--use-core",
    "--ctypes-prefix",
    "libc",
    "--impl-debug",
    "--with-derive-default",
)
C2RUST_TRANSPILE_OPTIONS = (
    "--preserve-unused-functions",
    "--emit-modules",
    "--emit-no-std",
    "--translate-const-macros",
)


@dataclass(frozen=True)
class CompileCommand:
    arguments: tuple[str, ...]
    directory: str
    file: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "arguments": list(self.arguments),
            "directory": self.directory,
            "file": self.file,
        }


def transpiler_output_name(source_name: str) -> str:
    """c2rust --emit-modules names its output after the input stem, dashes folded."""
    return Path(source_name).stem.replace("-", "_") + ".rs"


def build_compile_command(environment: CompileEnvironment, directory: Path, source_name: str) -> CompileCommand:
    return CompileCommand(
        arguments=(PLACEHOLDER_COMPILER, *environment.clang_args, source_name),
        directory=str(directory),
        file=source_name,
    )


def write_compile_commands(path: Path, commands: Iterable[CompileCommand]) -> Path:
    write_json(path, [command.as_dict() for command in commands])
    return path


def stage_header(header: Path, out_dir: Path) -> Path:
    """Copy a fixed header next to the synthetic source so relative includes resolve there."""
    destination = out_dir / header.name
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(header, destination)
    except OSError as exc:
        raise ArtifactIOError(f"Failed to copy '{header}' to '{destination}': {exc}") from exc
    return destination


def _stage_report(result: ToolResult, **artifacts: Path) -> dict[str, Any]:
    report = result.as_dict()
    report["status"] = "pass"
    report["artifacts"] = {key: str(value) for key, value in artifacts.items()}
    return report


def _require_artifact(path: Path, tool: str) -> Path:
    if not path.is_file():
        raise ArtifactIOError(f"{tool} exited successfully but did not produce '{path}'")
    return path


def run_bindgen(
    environment: CompileEnvironment,
    tool: ExternalTool,
    header: Path,
    output: Path,
) -> dict[str, Any]:
    output.parent.mkdir(parents=True, exist_ok=True)
    args = [str(header), "--output", str(output), *BINDGEN_OPTIONS, "--", *environment.clang_args]
    result = require_success(tool.invoke(args))
    _require_artifact(output, tool.name)
    return _stage_report(result, bindings=output)


def preprocess_source(
    environment: CompileEnvironment,
    compiler: ExternalTool,
    out_dir: Path,
    source_name: str = SYNTHETIC_SOURCE_NAME,
    expanded_name: str = EXPANDED_SOURCE_NAME,
) -> dict[str, Any]:
    """Expand the synthetic source with the real compiler.

    Compiler-specific extension syntax is gone after expansion; ``-dD`` keeps the
    macro definitions so c2rust can still translate const macros.
    """
    expanded = out_dir / expanded_name
    remove_if_exists(expanded)
    # GCC has no mode that expands macros but keeps #include lines, so includes are expanded too.
    args = [*environment.clang_args, "-E", "-dD", "-o", expanded_name, source_name]
    result = require_success(compiler.invoke(args, cwd=out_dir))
    _require_artifact(expanded, compiler.name)
    return _stage_report(result, expanded=expanded)


def dump_defined_macros(
    environment: CompileEnvironment,
    compiler: ExternalTool,
    out_dir: Path,
    source_name: str = SYNTHETIC_SOURCE_NAME,
) -> ToolResult:
    """Run ``-dM -E`` over the synthetic source; stdout lists every macro defined for the board."""
    args = [*environment.clang_args, "-dM", "-E", source_name]
    return require_success(compiler.invoke(args, cwd=out_dir))


def _mentioned_accessors(stderr: str, accessor_names: Mapping[str, str]) -> list[str]:
    mentioned: list[str] = []
    for accessor, macro in accessor_names.items():
        if re.search(rf"\b(?:{re.escape(accessor)}|{re.escape(macro)})\b", stderr):
            mentioned.append(macro)
    return sorted(set(mentioned))


def run_c2rust(
    environment: CompileEnvironment,
    toolset: Toolset,
    out_dir: Path,
    accessor_names: Mapping[str, str] | None = None,
    source_name: str = SYNTHETIC_SOURCE_NAME,
) -> dict[str, Any]:
    """Transpile the synthetic source; returns the stage report with the raw output path."""
    stages: list[dict[str, Any]] = []
    if not environment.is_clang_family():
        stages.append(preprocess_source(environment, toolset.compiler, out_dir, source_name))
        source_name = EXPANDED_SOURCE_NAME

    output = out_dir / transpiler_output_name(source_name)
    # c2rust leaves an existing output alone instead of overwriting it
    removed_stale = remove_if_exists(output)

    commands_path = write_compile_commands(
        out_dir / COMPILE_COMMANDS_NAME,
        [build_compile_command(environment, out_dir, source_name)],
    )
    result = toolset.c2rust.invoke(["transpile", str(commands_path), *C2RUST_TRANSPILE_OPTIONS])
    if not result.ok:
        macros = _mentioned_accessors(result.stderr, accessor_names or {})
        if macros:
            raise UndefinedMacroError(result.tool, result.command_line, result.exit_code, result.stderr, macros)
        require_success(result)
    _require_artifact(output, toolset.c2rust.name)

    report = _stage_report(result, compile_commands=commands_path, transpiled=output)
    report["input"] = source_name
    report["removed_stale_output"] = removed_stale
    report["preprocess"] = stages[0] if stages else None
    return report
