from __future__ import annotations

import argparse
from pathlib import Path

from ..config import Catalogs, PipelineInputs, load_catalogs, resolve_inputs


def inputs_from_args(args: argparse.Namespace) -> PipelineInputs:
    return resolve_inputs(
        compile_commands=getattr(args, "compile_commands", None),
        usemodule=getattr(args, "usemodule", None),
        cc=getattr(args, "cc", None),
        cflags=getattr(args, "cflags", None),
        out_dir=getattr(args, "out_dir", None),
        bindgen=getattr(args, "bindgen", None),
        c2rust=getattr(args, "c2rust", None),
    )


def catalogs_from_args(args: argparse.Namespace) -> Catalogs:
    config = getattr(args, "config", None)
    return load_catalogs(Path(config).resolve() if config else None)
