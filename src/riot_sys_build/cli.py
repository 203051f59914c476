from __future__ import annotations

import argparse
import sys

from .commands import (
    command_generate,
    command_introspect,
    command_macros,
    command_materialize,
    command_patch,
)
from .errors import RiotSysBuildError, ToolInvocationError

GENERIC_FAILURE = 2


def add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="JSON config extending the built-in catalogs.")


def add_environment_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--compile-commands", help="compile_commands.json of the RIOT build (RIOT_COMPILE_COMMANDS_JSON).")
    parser.add_argument("--usemodule", help="Space separated active module names (RIOT_USEMODULE).")
    parser.add_argument("--cc", help="Compiler path when no compile commands are given (RIOT_CC).")
    parser.add_argument("--cflags", help="Shell-quoted compiler flags when no compile commands are given (RIOT_CFLAGS).")
    parser.add_argument(
        "--strict-consensus",
        action="store_true",
        help="Fail when compile records disagree instead of warning.",
    )
    add_config_argument(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="riot-sys-build",
        description="Generate Rust bindings for RIOT with bindgen and c2rust, then reconcile the two outputs.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Run the whole binding generation pipeline.")
    add_environment_arguments(generate)
    generate.add_argument("--out-dir", help="Directory for intermediate and final artifacts (OUT_DIR).")
    generate.add_argument("--bindgen", help="bindgen executable (BINDGEN, default: bindgen).")
    generate.add_argument("--c2rust", help="c2rust executable (C2RUST, default: c2rust).")
    generate.add_argument("--cargo-directives", action="store_true", help="Print cargo: build-script directives.")
    generate.add_argument(
        "--report-macros",
        action="store_true",
        help="Ask the real compiler which catalog macros are defined before transpiling.",
    )
    generate.add_argument("--report-json", help="Write the run report JSON to path.")
    generate.set_defaults(func=command_generate)

    introspect = sub.add_parser("introspect", help="Print the derived compiler environment.")
    add_environment_arguments(introspect)
    introspect.add_argument("--cargo-directives", action="store_true", help="Print cargo: directives instead of JSON.")
    introspect.add_argument("--output", help="Write the environment JSON to path.")
    introspect.set_defaults(func=command_introspect)

    materialize = sub.add_parser("materialize", help="Write the synthetic macro accessor source.")
    add_config_argument(materialize)
    materialize.add_argument("--out-dir", help="Directory to write riot-c2rust.h and riot-headers.h to (OUT_DIR).")
    materialize.add_argument("--output", help="Write only the synthetic source, to this path.")
    materialize.set_defaults(func=command_materialize)

    macros = sub.add_parser("macros", help="Report which catalog macros are defined for the target.")
    add_environment_arguments(macros)
    macros.add_argument("--out-dir", help="Directory for the synthetic source (OUT_DIR).")
    macros.add_argument("--output", help="Write the definedness report JSON to path.")
    macros.add_argument("--print-json", action="store_true", help="Print the report as JSON.")
    macros.set_defaults(func=command_macros)

    patch = sub.add_parser("patch", help="Run the reconciliation pass over a c2rust output file.")
    add_config_argument(patch)
    patch.add_argument("--input", required=True, help="Raw c2rust output (e.g. riot_c2rust.rs).")
    patch.add_argument("--output", help="Patched output path (default: <input>_replaced.rs).")
    patch.add_argument("--print-diff", action="store_true", help="Print a unified diff of the rewrite.")
    patch.add_argument("--report-json", help="Write per-rule match counts as JSON.")
    patch.set_defaults(func=command_patch)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))
    except ToolInvocationError as exc:
        print(f"riot-sys-build error: {exc}", file=sys.stderr)
        if exc.stderr.strip():
            for line in exc.stderr.strip().splitlines():
                print(f"  {line}", file=sys.stderr)
        if exc.exit_code is not None and exc.exit_code > 0:
            return exc.exit_code
        return GENERIC_FAILURE
    except RiotSysBuildError as exc:
        print(f"riot-sys-build error: {exc}", file=sys.stderr)
        return GENERIC_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
