from __future__ import annotations

import argparse
from pathlib import Path

from ..common import write_json
from ..pipeline import cargo_directives, introspect_inputs, run_pipeline
from .common import catalogs_from_args, inputs_from_args


def command_generate(args: argparse.Namespace) -> int:
    inputs = inputs_from_args(args)
    catalogs = catalogs_from_args(args)
    environment = introspect_inputs(inputs, catalogs, strict_consensus=bool(args.strict_consensus))

    if args.cargo_directives:
        for line in cargo_directives(inputs, environment):
            print(line)
        for message in environment.warnings:
            print(f"cargo:warning={message}")

    report = run_pipeline(
        inputs,
        catalogs,
        environment=environment,
        check_macros=bool(args.report_macros),
    )

    patch_counts = report["stages"]["patch"]["rules"]
    idle_rules = sorted(name for name, count in patch_counts.items() if count == 0)
    if idle_rules:
        print(f"[patch] rules without matches: {', '.join(idle_rules)}")
    print(f"generate: bindings={report['artifacts']['bindings']} patched={report['artifacts']['patched']}")

    if args.report_json:
        write_json(Path(args.report_json).resolve(), report)
    return 0
