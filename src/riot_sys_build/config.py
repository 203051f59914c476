from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import jsonschema

from .common import load_json
from .errors import ConfigurationError
from .macros import MACRO_FAMILIES, STRUCT_INITIALIZERS, MacroFamily, MacroInitializer
from .patcher import (
    DEFAULT_CALLING_CONVENTIONS,
    DEFAULT_IDENTIFIER_RENAMES,
    CallingConventionTable,
    ConventionPolicy,
    IdentifierRenames,
    RewriteRule,
    build_rewrite_rules,
)
from .toolchain import DEFAULT_FLAG_DENY_LIST, FlagDenyList

PACKAGE_ROOT = Path(__file__).resolve().parent
HEADERS_DIR = PACKAGE_ROOT / "headers"
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"

BINDGEN_ENTRY_HEADER = HEADERS_DIR / "riot-bindgen.h"
C2RUST_ENTRY_HEADER = HEADERS_DIR / "riot-c2rust.h"
SHARED_HEADER = HEADERS_DIR / "riot-headers.h"

ENV_COMPILE_COMMANDS = "RIOT_COMPILE_COMMANDS_JSON"
ENV_USEMODULE = "RIOT_USEMODULE"
ENV_CC = "RIOT_CC"
ENV_CFLAGS = "RIOT_CFLAGS"
ENV_OUT_DIR = "OUT_DIR"
ENV_BINDGEN = "BINDGEN"
ENV_C2RUST = "C2RUST"
WATCHED_ENV_VARS = (ENV_COMPILE_COMMANDS, ENV_USEMODULE, ENV_CC, ENV_CFLAGS)


@dataclass(frozen=True)
class PipelineInputs:
    compile_commands: Path | None
    usemodule: str | None
    cc: str | None
    cflags: str | None
    out_dir: Path | None
    bindgen: str = "bindgen"
    c2rust: str = "c2rust"

    def require_out_dir(self) -> Path:
        if self.out_dir is None:
            raise ConfigurationError(f"{ENV_OUT_DIR} is required (or pass --out-dir)")
        return self.out_dir


def _pick(override: str | None, environ: Mapping[str, str], key: str, allow_empty: bool = False) -> str | None:
    if override is not None:
        return override
    value = environ.get(key)
    if value is None:
        return None
    if not value.strip() and not allow_empty:
        return None
    return value


def resolve_inputs(
    environ: Mapping[str, str] | None = None,
    *,
    compile_commands: str | None = None,
    usemodule: str | None = None,
    cc: str | None = None,
    cflags: str | None = None,
    out_dir: str | None = None,
    bindgen: str | None = None,
    c2rust: str | None = None,
) -> PipelineInputs:
    """Merge CLI overrides over the build-script environment."""
    env = os.environ if environ is None else environ
    commands_value = _pick(compile_commands, env, ENV_COMPILE_COMMANDS)
    out_dir_value = _pick(out_dir, env, ENV_OUT_DIR)
    return PipelineInputs(
        compile_commands=Path(commands_value).resolve() if commands_value else None,
        # An empty module list is legitimate: no MODULE_* defines at all.
        usemodule=_pick(usemodule, env, ENV_USEMODULE, allow_empty=True),
        cc=_pick(cc, env, ENV_CC),
        cflags=_pick(cflags, env, ENV_CFLAGS, allow_empty=True),
        out_dir=Path(out_dir_value).resolve() if out_dir_value else None,
        bindgen=_pick(bindgen, env, ENV_BINDGEN) or "bindgen",
        c2rust=_pick(c2rust, env, ENV_C2RUST) or "c2rust",
    )


@dataclass(frozen=True)
class Catalogs:
    """Read-only tables consulted by the materializer and the patch pass."""

    deny_list: FlagDenyList = DEFAULT_FLAG_DENY_LIST
    struct_initializers: tuple[MacroInitializer, ...] = STRUCT_INITIALIZERS
    macro_families: tuple[MacroFamily, ...] = MACRO_FAMILIES
    calling_conventions: CallingConventionTable = DEFAULT_CALLING_CONVENTIONS
    identifier_renames: IdentifierRenames = DEFAULT_IDENTIFIER_RENAMES

    def rewrite_rules(self) -> tuple[RewriteRule, ...]:
        return build_rewrite_rules(
            calling_conventions=self.calling_conventions,
            renames=self.identifier_renames,
            families=self.macro_families,
        )

    def accessor_names(self) -> dict[str, str]:
        """Accessor name -> macro (or family) name, for attributing transpiler failures."""
        names: dict[str, str] = {}
        for entry in self.struct_initializers:
            names[entry.accessor_name] = entry.macro_name
        for family in self.macro_families:
            names[family.accessor_name] = family.name
        return names


def validate_config_payload(payload: Any, label: str) -> None:
    schema = load_json(SCHEMAS_DIR / "config.schema.json")
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ConfigurationError(f"{label} failed JSON schema validation at {location}: {exc.message}") from exc


def build_catalogs(payload: Mapping[str, Any]) -> Catalogs:
    flags_cfg = payload.get("flags") or {}
    deny_list = DEFAULT_FLAG_DENY_LIST.extended(
        exact=flags_cfg.get("deny", []),
        with_argument=flags_cfg.get("deny_with_argument", []),
    )

    initializers = list(STRUCT_INITIALIZERS)
    known_macros = {entry.macro_name for entry in initializers}
    for item in payload.get("struct_initializers", []):
        if item["macro"] in known_macros:
            raise ConfigurationError(f"struct initializer '{item['macro']}' is already defined")
        known_macros.add(item["macro"])
        initializers.append(MacroInitializer(item["macro"], item["type"]))

    families = list(MACRO_FAMILIES)
    known_families = {family.name for family in families}
    for item in payload.get("macro_families", []):
        if item["name"] in known_families:
            raise ConfigurationError(f"macro family '{item['name']}' is already defined")
        known_families.add(item["name"])
        families.append(MacroFamily(item["name"], item["type"], item["pattern"], int(item.get("count", 8))))

    conventions = DEFAULT_CALLING_CONVENTIONS.extended(
        {name: ConventionPolicy.from_name(policy) for name, policy in payload.get("calling_conventions", {}).items()}
    )

    renames_cfg = payload.get("identifier_renames") or {}
    renames = DEFAULT_IDENTIFIER_RENAMES.extended(
        exact=renames_cfg.get("exact"),
        prefixes=renames_cfg.get("prefixes"),
    )

    return Catalogs(
        deny_list=deny_list,
        struct_initializers=tuple(initializers),
        macro_families=tuple(families),
        calling_conventions=conventions,
        identifier_renames=renames,
    )


def load_catalogs(config_path: Path | None) -> Catalogs:
    if config_path is None:
        return Catalogs()
    payload = load_json(config_path)
    validate_config_payload(payload, f"config '{config_path}'")
    return build_catalogs(payload)
