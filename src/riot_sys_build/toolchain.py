from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .common import load_json
from .errors import ConfigurationError

COMPILE_ONLY_MARKER = "-c"

# Dependency-file generation would drop .d files next to the generator inputs.
DEPENDENCY_FLAGS = ("-MD", "-MMD", "-MP")
DEPENDENCY_FLAGS_WITH_ARGUMENT = ("-MF", "-MT", "-MQ")

# Accepted by the GCC builds RIOT uses, rejected by the libclang front end of bindgen/c2rust.
FRONTEND_REJECTED_FLAGS = (
    "-fno-delayed-branch",
    "-fno-tree-loop-distribute-patterns",
    "-fstrict-volatile-bitfields",
    "-mno-thumb-interwork",
    "-mlongcalls",
    "-mtext-section-literals",
    "-Wformat-overflow",
    "-Wformat-truncation",
)


@dataclass(frozen=True)
class FlagDenyList:
    exact: frozenset[str]
    with_argument: frozenset[str] = frozenset()

    def extended(self, exact: Iterable[str] = (), with_argument: Iterable[str] = ()) -> FlagDenyList:
        return FlagDenyList(
            exact=self.exact | frozenset(exact),
            with_argument=self.with_argument | frozenset(with_argument),
        )

    def __contains__(self, flag: object) -> bool:
        return flag in self.exact or flag in self.with_argument


DEFAULT_FLAG_DENY_LIST = FlagDenyList(
    exact=frozenset(DEPENDENCY_FLAGS + FRONTEND_REJECTED_FLAGS),
    with_argument=frozenset(DEPENDENCY_FLAGS_WITH_ARGUMENT),
)


@dataclass(frozen=True)
class CompileEnvironment:
    """The compiler and flags the firmware is really built with.

    ``flag_sequence`` is already filtered through the deny list; ``feature_defines``
    holds the ``-DMODULE_*`` flags derived from the active module list.
    """

    compiler_path: str
    flag_sequence: tuple[str, ...]
    feature_defines: tuple[str, ...] = ()
    source: str = "explicit"
    warnings: tuple[str, ...] = field(default=(), compare=False)

    @property
    def clang_args(self) -> list[str]:
        return [*self.flag_sequence, *self.feature_defines]

    @property
    def cflags(self) -> str:
        return shlex.join(self.clang_args)

    def is_clang_family(self) -> bool:
        return "clang" in Path(self.compiler_path).name.lower()

    def as_dict(self) -> dict[str, Any]:
        return {
            "compiler_path": self.compiler_path,
            "flag_sequence": list(self.flag_sequence),
            "feature_defines": list(self.feature_defines),
            "source": self.source,
            "clang_family": self.is_clang_family(),
        }


def module_define(module_name: str) -> str:
    normalized = re.sub(r"[^A-Z0-9_]", "_", module_name.upper())
    return f"-DMODULE_{normalized}"


def parse_module_list(value: str) -> list[str]:
    return value.split()


def truncate_at_compile_marker(arguments: Iterable[str]) -> list[str]:
    flags: list[str] = []
    for argument in arguments:
        if argument == COMPILE_ONLY_MARKER:
            break
        flags.append(argument)
    return flags


def filter_flags(flags: Iterable[str], deny_list: FlagDenyList = DEFAULT_FLAG_DENY_LIST) -> list[str]:
    out: list[str] = []
    skip_next = False
    for flag in flags:
        if skip_next:
            skip_next = False
            continue
        if flag in deny_list.with_argument:
            skip_next = True
            continue
        # Valued spellings like -Wformat-overflow=2 are denied with their base flag
        if flag in deny_list.exact or flag.split("=", 1)[0] in deny_list.exact:
            continue
        # Joined spelling of an argument-taking flag, e.g. -MFfoo.d
        if any(flag.startswith(prefix) and flag != prefix for prefix in deny_list.with_argument):
            continue
        out.append(flag)
    return out


def split_flag_string(value: str, label: str) -> list[str]:
    try:
        return shlex.split(value)
    except ValueError as exc:
        raise ConfigurationError(f"Odd shell escaping in {label}: {exc}") from exc


def load_compile_records(path: Path) -> list[list[str]]:
    payload = load_json(path)
    if not isinstance(payload, list) or not payload:
        raise ConfigurationError(f"Compile commands in '{path}' must be a non-empty array")

    records: list[list[str]] = []
    for index, entry in enumerate(payload):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"'{path}'[{index}] must be an object")
        arguments = entry.get("arguments")
        if arguments is None and isinstance(entry.get("command"), str):
            arguments = split_flag_string(entry["command"], f"'{path}'[{index}].command")
        if not isinstance(arguments, list) or not arguments or not all(isinstance(x, str) for x in arguments):
            raise ConfigurationError(f"'{path}'[{index}].arguments must be a non-empty string array")
        records.append(list(arguments))
    return records


def describe_divergence(records: list[list[str]], deny_list: FlagDenyList = DEFAULT_FLAG_DENY_LIST) -> list[str]:
    """Compare every record's filtered flags against the first one (which is the one used).

    Per-file flags the deny list drops anyway, like -MQ targets, are not divergence.
    """
    reference = filter_flags(truncate_at_compile_marker(records[0][1:]), deny_list)
    reference_set = set(reference)
    messages: list[str] = []
    for index, record in enumerate(records[1:], start=1):
        flags = filter_flags(truncate_at_compile_marker(record[1:]), deny_list)
        if record[0] != records[0][0]:
            messages.append(f"compile record {index} uses compiler '{record[0]}' instead of '{records[0][0]}'")
        if flags == reference:
            continue
        missing = sorted(reference_set - set(flags))
        extra = sorted(set(flags) - reference_set)
        if not missing and not extra:
            messages.append(f"compile record {index} orders its flags differently")
            continue
        parts: list[str] = []
        if missing:
            parts.append(f"missing {' '.join(missing)}")
        if extra:
            parts.append(f"extra {' '.join(extra)}")
        messages.append(f"compile record {index} diverges from record 0: {'; '.join(parts)}")
    return messages


def environment_from_compile_commands(
    path: Path,
    usemodule: str | None,
    deny_list: FlagDenyList = DEFAULT_FLAG_DENY_LIST,
    strict_consensus: bool = False,
) -> CompileEnvironment:
    if usemodule is None:
        raise ConfigurationError("RIOT_USEMODULE is required when RIOT_COMPILE_COMMANDS_JSON is given")

    records = load_compile_records(path)
    divergence = describe_divergence(records, deny_list)
    if divergence and strict_consensus:
        raise ConfigurationError(
            f"compile records in '{path}' disagree: " + "; ".join(divergence)
        )

    chosen = records[0]
    flags = filter_flags(truncate_at_compile_marker(chosen[1:]), deny_list)
    defines = tuple(module_define(name) for name in parse_module_list(usemodule))
    return CompileEnvironment(
        compiler_path=chosen[0],
        flag_sequence=tuple(flags),
        feature_defines=defines,
        source="compile_commands",
        warnings=tuple(divergence),
    )


def environment_from_explicit(
    cc: str,
    cflags: str,
    deny_list: FlagDenyList = DEFAULT_FLAG_DENY_LIST,
) -> CompileEnvironment:
    flags = filter_flags(split_flag_string(cflags, "RIOT_CFLAGS"), deny_list)
    return CompileEnvironment(compiler_path=cc, flag_sequence=tuple(flags), source="explicit")


def introspect(
    *,
    compile_commands: Path | None,
    usemodule: str | None,
    cc: str | None,
    cflags: str | None,
    deny_list: FlagDenyList = DEFAULT_FLAG_DENY_LIST,
    strict_consensus: bool = False,
) -> CompileEnvironment:
    if compile_commands is not None:
        return environment_from_compile_commands(
            compile_commands,
            usemodule,
            deny_list=deny_list,
            strict_consensus=strict_consensus,
        )
    if cc is None:
        raise ConfigurationError("Please pass in RIOT_CC (or RIOT_COMPILE_COMMANDS_JSON)")
    if cflags is None:
        raise ConfigurationError("Please pass in RIOT_CFLAGS (or RIOT_COMPILE_COMMANDS_JSON)")
    return environment_from_explicit(cc, cflags, deny_list=deny_list)
