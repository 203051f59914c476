from __future__ import annotations

import argparse
from pathlib import Path

from ..common import compute_unified_diff, read_text, write_json, write_text
from ..patcher import reconcile
from .common import catalogs_from_args


def command_patch(args: argparse.Namespace) -> int:
    catalogs = catalogs_from_args(args)
    input_path = Path(args.input).resolve()
    output_path = Path(args.output).resolve() if args.output else input_path.with_name(
        f"{input_path.stem}_replaced{input_path.suffix}"
    )

    original = read_text(input_path)
    result = reconcile(original, catalogs.rewrite_rules())
    write_text(output_path, result.text)

    for name, count in result.counts.items():
        print(f"[patch] {name}: {count}")
    if args.print_diff:
        diff = compute_unified_diff(original, result.text, f"a/{input_path.name}", f"b/{output_path.name}")
        if diff:
            print(diff)
    print(f"patch: wrote {output_path}")

    if args.report_json:
        write_json(Path(args.report_json).resolve(), result.as_dict())
    return 0
