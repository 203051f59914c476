from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any, Callable

from .common import elapsed_ms_since
from .config import (
    BINDGEN_ENTRY_HEADER,
    C2RUST_ENTRY_HEADER,
    SHARED_HEADER,
    WATCHED_ENV_VARS,
    Catalogs,
    PipelineInputs,
)
from .macros import definedness_report, materialize, parse_defined_macros
from .orchestrator import (
    BINDINGS_NAME,
    COMPILE_COMMANDS_NAME,
    SYNTHETIC_SOURCE_NAME,
    dump_defined_macros,
    run_bindgen,
    run_c2rust,
    stage_header,
)
from .patcher import patch_file
from .toolchain import CompileEnvironment, introspect
from .tools import Toolset, default_toolset

PATCHED_OUTPUT_NAME = "riot_c2rust_replaced.rs"


def warn(message: str) -> None:
    print(f"warning: {message}", file=sys.stderr)


def introspect_inputs(inputs: PipelineInputs, catalogs: Catalogs, strict_consensus: bool = False) -> CompileEnvironment:
    environment = introspect(
        compile_commands=inputs.compile_commands,
        usemodule=inputs.usemodule,
        cc=inputs.cc,
        cflags=inputs.cflags,
        deny_list=catalogs.deny_list,
        strict_consensus=strict_consensus,
    )
    for message in environment.warnings:
        warn(message)
    return environment


def write_synthetic_source(out_dir: Path, catalogs: Catalogs) -> Path:
    stage_header(SHARED_HEADER, out_dir)
    return materialize(
        C2RUST_ENTRY_HEADER,
        out_dir / SYNTHETIC_SOURCE_NAME,
        catalogs.struct_initializers,
        catalogs.macro_families,
    )


def report_macros(environment: CompileEnvironment, toolset: Toolset, out_dir: Path, catalogs: Catalogs) -> dict[str, Any]:
    result = dump_defined_macros(environment, toolset.compiler, out_dir)
    return definedness_report(
        parse_defined_macros(result.stdout),
        catalogs.struct_initializers,
        catalogs.macro_families,
    )


def run_pipeline(
    inputs: PipelineInputs,
    catalogs: Catalogs | None = None,
    *,
    toolset_factory: Callable[[CompileEnvironment], Toolset] | None = None,
    environment: CompileEnvironment | None = None,
    strict_consensus: bool = False,
    check_macros: bool = False,
) -> dict[str, Any]:
    """Introspect, materialize, run bindgen and c2rust, then reconcile.

    Every run regenerates all artifacts in the output directory; a failure
    leaves whatever was written so far in place.
    """
    catalogs = catalogs or Catalogs()
    start = time.perf_counter()
    out_dir = inputs.require_out_dir()

    if environment is None:
        environment = introspect_inputs(inputs, catalogs, strict_consensus)
    print(
        f"[introspect] compiler={environment.compiler_path} flags={len(environment.flag_sequence)} "
        f"defines={len(environment.feature_defines)} source={environment.source}"
    )
    if toolset_factory is None:
        toolset = default_toolset(environment.compiler_path, bindgen=inputs.bindgen, c2rust=inputs.c2rust)
    else:
        toolset = toolset_factory(environment)

    synthetic = write_synthetic_source(out_dir, catalogs)
    print(f"[materialize] wrote {synthetic}")

    report: dict[str, Any] = {
        "environment": environment.as_dict(),
        "warnings": list(environment.warnings),
        "synthetic_source": str(synthetic),
        "stages": {},
    }

    if check_macros:
        macros = report_macros(environment, toolset, out_dir, catalogs)
        report["macros"] = macros
        for name, entry in macros["initializers"].items():
            if not entry["defined"]:
                print(f"[macros] {name}: not defined for this target, {entry['accessor']} will be absent")

    bindings = run_bindgen(environment, toolset.bindgen, BINDGEN_ENTRY_HEADER, out_dir / BINDINGS_NAME)
    report["stages"]["bindgen"] = bindings
    print(f"[bindgen] wrote {out_dir / BINDINGS_NAME}")

    print(f"[c2rust] running on {out_dir / COMPILE_COMMANDS_NAME}")
    transpiled = run_c2rust(environment, toolset, out_dir, catalogs.accessor_names())
    report["stages"]["c2rust"] = transpiled
    transpiled_path = Path(transpiled["artifacts"]["transpiled"])

    patched_path = out_dir / PATCHED_OUTPUT_NAME
    patch = patch_file(transpiled_path, patched_path, catalogs.rewrite_rules())
    report["stages"]["patch"] = {
        "status": "pass",
        "input": str(transpiled_path),
        "artifacts": {"patched": str(patched_path)},
        **patch.as_dict(),
    }
    print(f"[patch] wrote {patched_path} ({sum(patch.counts.values())} rewrite(s))")

    report["artifacts"] = {
        "bindings": str(out_dir / BINDINGS_NAME),
        "patched": str(patched_path),
    }
    report["elapsed_ms"] = elapsed_ms_since(start)
    return report


def cargo_directives(inputs: PipelineInputs, environment: CompileEnvironment) -> list[str]:
    """Build-script protocol lines so cargo reruns on change and dependees see CC/CFLAGS."""
    lines: list[str] = []
    if inputs.compile_commands is not None:
        lines.append(f"cargo:rerun-if-changed={inputs.compile_commands}")
    for name in WATCHED_ENV_VARS:
        lines.append(f"cargo:rerun-if-env-changed={name}")
    lines.append(f"cargo:CC={environment.compiler_path}")
    lines.append(f"cargo:CFLAGS={environment.cflags}")
    for header in (BINDGEN_ENTRY_HEADER, C2RUST_ENTRY_HEADER, SHARED_HEADER):
        lines.append(f"cargo:rerun-if-changed={header}")
    return lines
