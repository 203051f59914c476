from __future__ import annotations

import argparse
import json
from pathlib import Path

from ..common import write_json
from ..config import C2RUST_ENTRY_HEADER
from ..macros import materialize
from ..pipeline import cargo_directives, introspect_inputs, report_macros, write_synthetic_source
from ..tools import default_toolset
from .common import catalogs_from_args, inputs_from_args


def command_introspect(args: argparse.Namespace) -> int:
    inputs = inputs_from_args(args)
    catalogs = catalogs_from_args(args)
    environment = introspect_inputs(inputs, catalogs, strict_consensus=bool(args.strict_consensus))

    if args.cargo_directives:
        for line in cargo_directives(inputs, environment):
            print(line)
    else:
        print(json.dumps(environment.as_dict(), indent=2, sort_keys=True))

    if args.output:
        write_json(Path(args.output).resolve(), environment.as_dict())
    return 0


def command_materialize(args: argparse.Namespace) -> int:
    catalogs = catalogs_from_args(args)
    if args.output:
        output = materialize(
            C2RUST_ENTRY_HEADER,
            Path(args.output).resolve(),
            catalogs.struct_initializers,
            catalogs.macro_families,
        )
    else:
        output = write_synthetic_source(inputs_from_args(args).require_out_dir(), catalogs)
    print(f"materialize: wrote {output}")
    return 0


def command_macros(args: argparse.Namespace) -> int:
    inputs = inputs_from_args(args)
    catalogs = catalogs_from_args(args)
    out_dir = inputs.require_out_dir()
    environment = introspect_inputs(inputs, catalogs, strict_consensus=bool(args.strict_consensus))
    write_synthetic_source(out_dir, catalogs)

    report = report_macros(environment, default_toolset(environment.compiler_path), out_dir, catalogs)
    if args.print_json:
        print(json.dumps(report, indent=2, sort_keys=True))
    else:
        for name, entry in sorted(report["initializers"].items()):
            state = "defined" if entry["defined"] else "undefined"
            print(f"{name}: {state} ({entry['accessor']})")
        for name, entry in sorted(report["families"].items()):
            members = ", ".join(entry["defined_members"]) or "none"
            print(f"{name}[{entry['length']}]: {members} ({entry['accessor']})")

    if args.output:
        write_json(Path(args.output).resolve(), report)
    return 0
