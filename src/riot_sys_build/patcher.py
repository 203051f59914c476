from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from .common import read_text, write_text
from .macros import MACRO_FAMILIES, MacroFamily

IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*"
# String and char literals; identifier renames leave their contents alone.
LITERAL_RE = re.compile(r'"(?:[^"\\]|\\.)*"|\'(?:\\.|[^\\\'\n])\'', re.S)


class ConventionPolicy(enum.Enum):
    """Function header emitted for a transpiled function."""

    # Called back by RIOT itself, or referenced from translated const macros.
    FOREIGN = 'pub unsafe extern "C" fn '
    CONST = "pub const unsafe fn "
    CONST_SAFE = "pub const fn "
    CALLABLE = "pub unsafe fn "

    @property
    def header(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> ConventionPolicy:
        try:
            return cls[name.upper()]
        except KeyError as exc:
            known = ", ".join(item.name.lower() for item in cls)
            raise ValueError(f"unknown calling convention policy '{name}' (known: {known})") from exc


@dataclass(frozen=True)
class CallingConventionTable:
    exact: Mapping[str, ConventionPolicy]
    patterns: tuple[tuple[re.Pattern[str], ConventionPolicy], ...] = ()
    default: ConventionPolicy = ConventionPolicy.CALLABLE

    def policy_for(self, function_name: str) -> ConventionPolicy:
        policy = self.exact.get(function_name)
        if policy is not None:
            return policy
        for pattern, candidate in self.patterns:
            if pattern.fullmatch(function_name):
                return candidate
        return self.default

    def extended(self, exact: Mapping[str, ConventionPolicy]) -> CallingConventionTable:
        merged = dict(self.exact)
        merged.update(exact)
        return CallingConventionTable(MappingProxyType(merged), self.patterns, self.default)


DEFAULT_CALLING_CONVENTIONS = CallingConventionTable(
    exact=MappingProxyType(
        {
            # evtimer hands these to the msg/mbox machinery as callbacks
            "_evtimer_msg_handler": ConventionPolicy.FOREIGN,
            "_evtimer_mbox_handler": ConventionPolicy.FOREIGN,
            # referenced by c2rust's --translate-const-macros output
            "__NVIC_SetPriority": ConventionPolicy.FOREIGN,
            # has a macro twin (MUTEX_INIT), so it is usable in const context
            "mutex_init": ConventionPolicy.CONST,
        }
    ),
    patterns=((re.compile(r"init_[A-Z][A-Z0-9_]*"), ConventionPolicy.CONST_SAFE),),
)


@dataclass(frozen=True)
class IdentifierRenames:
    """Renames that make c2rust's identifiers agree with bindgen's.

    ``prefixes`` maps a prefix (like the raw-identifier marker ``r#``) to the
    suffix that replaces it; ``exact`` maps whole words to their replacement.
    """

    exact: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    prefixes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def extended(
        self,
        exact: Mapping[str, str] | None = None,
        prefixes: Mapping[str, str] | None = None,
    ) -> IdentifierRenames:
        return IdentifierRenames(
            exact=MappingProxyType({**self.exact, **(exact or {})}),
            prefixes=MappingProxyType({**self.prefixes, **(prefixes or {})}),
        )


DEFAULT_IDENTIFIER_RENAMES = IdentifierRenames(
    exact=MappingProxyType(
        {
            "yield": "yield_",
            "try": "try_",
            "async": "async_",
            "await": "await_",
            "gen": "gen_",
        }
    ),
    prefixes=MappingProxyType({"r#": "_"}),
)


@dataclass(frozen=True)
class RewriteRule:
    name: str
    pattern: re.Pattern[str]
    replacement: str | Callable[[re.Match[str]], str]
    code_only: bool = False

    def apply(self, text: str) -> tuple[str, int]:
        if not self.code_only:
            return self.pattern.subn(self.replacement, text)
        pieces: list[str] = []
        total = 0
        last = 0
        for literal in LITERAL_RE.finditer(text):
            code, count = self.pattern.subn(self.replacement, text[last : literal.start()])
            pieces.extend([code, literal.group(0)])
            total += count
            last = literal.end()
        code, count = self.pattern.subn(self.replacement, text[last:])
        pieces.append(code)
        return "".join(pieces), total + count

    @classmethod
    def literal(cls, name: str, search: str, replacement: str) -> RewriteRule:
        return cls(name, re.compile(re.escape(search)), replacement.replace("\\", "\\\\"))


FUNCTION_HEADER_RE = re.compile(
    r'^(?P<indent>[ \t]*)(?:pub(?:\([a-z]+\))? )?'
    # plain `fn` lines are declarations inside extern blocks and never match
    r'(?=const |unsafe |extern "C" )'
    r'(?:const )?(?:unsafe )?(?:extern "C" )?'
    rf"fn (?P<name>{IDENTIFIER})\b",
    re.M,
)


def _calling_convention_rewriter(table: CallingConventionTable) -> Callable[[re.Match[str]], str]:
    def rewrite(match: re.Match[str]) -> str:
        policy = table.policy_for(match.group("name"))
        return f"{match.group('indent')}{policy.header}{match.group('name')}"

    return rewrite


def _prefix_rename_rule(prefix: str, suffix: str) -> RewriteRule:
    pattern = re.compile(rf"(?<![A-Za-z0-9_]){re.escape(prefix)}({IDENTIFIER})\b")
    return RewriteRule(
        f"rename_prefix:{prefix}",
        pattern,
        lambda match: f"{match.group(1)}{suffix}",
        code_only=True,
    )


def _exact_rename_rule(name: str, replacement: str) -> RewriteRule:
    pattern = re.compile(rf"(?<![A-Za-z0-9_#]){re.escape(name)}(?![A-Za-z0-9_])")
    return RewriteRule(f"rename:{name}", pattern, lambda match: replacement, code_only=True)


def _family_constant_rule(family: MacroFamily) -> RewriteRule:
    name = re.escape(family.accessor_name)
    pattern = re.compile(
        rf"^(?P<indent>[ \t]*)(?:#\[no_mangle\]\n[ \t]*)?(?:pub )?static mut {name}:",
        re.M,
    )
    return RewriteRule(
        f"family_const:{family.accessor_name}",
        pattern,
        lambda match: f"{match.group('indent')}pub const {family.accessor_name}:",
    )


def build_rewrite_rules(
    calling_conventions: CallingConventionTable = DEFAULT_CALLING_CONVENTIONS,
    renames: IdentifierRenames = DEFAULT_IDENTIFIER_RENAMES,
    families: Iterable[MacroFamily] = MACRO_FAMILIES,
) -> tuple[RewriteRule, ...]:
    """The reconciliation pass, in the order it has to run.

    Renames come before the calling-convention walk so the table sees final names.
    """
    rules: list[RewriteRule] = [
        # bindgen's output already provides the libc ctypes
        RewriteRule.literal("strip_libc_import", "use ::libc;\n", ""),
        RewriteRule.literal("legacy_asm", " asm!(", " llvm_asm!("),
        # only present when c2rust exports body-less functions
        RewriteRule(
            "promote_bodyless_exports",
            re.compile(r"(#\[no_mangle\]\n[ \t]*)fn "),
            r"\1pub fn ",
        ),
    ]
    rules.extend(_prefix_rename_rule(prefix, suffix) for prefix, suffix in renames.prefixes.items())
    rules.extend(_exact_rename_rule(name, replacement) for name, replacement in renames.exact.items())
    rules.append(
        RewriteRule("calling_conventions", FUNCTION_HEADER_RE, _calling_convention_rewriter(calling_conventions))
    )
    rules.extend(_family_constant_rule(family) for family in families)
    return tuple(rules)


DEFAULT_REWRITE_RULES = build_rewrite_rules()


@dataclass(frozen=True)
class PatchResult:
    text: str
    counts: dict[str, int]

    def as_dict(self) -> dict[str, Any]:
        return {"rules": dict(self.counts), "total_matches": sum(self.counts.values())}


def reconcile(text: str, rules: Iterable[RewriteRule] = DEFAULT_REWRITE_RULES) -> PatchResult:
    counts: dict[str, int] = {}
    for rule in rules:
        text, count = rule.apply(text)
        counts[rule.name] = counts.get(rule.name, 0) + count
    return PatchResult(text=text, counts=counts)


def patch_file(input_path: Path, output_path: Path, rules: Iterable[RewriteRule] = DEFAULT_REWRITE_RULES) -> PatchResult:
    result = reconcile(read_text(input_path), rules)
    write_text(output_path, result.text)
    return result
