from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .common import read_text, write_text

ACCESSOR_BANNER = "/* Typed accessors for RIOT macros that bindgen and c2rust cannot reach on their own. */"
DEFINE_LINE_RE = re.compile(r"^\s*#\s*define\s+([A-Za-z_][A-Za-z0-9_]*)", re.M)


@dataclass(frozen=True)
class MacroInitializer:
    """A struct-valued (or otherwise untyped) constant macro made reachable through a function."""

    macro_name: str
    c_type: str

    @property
    def accessor_name(self) -> str:
        return f"init_{self.macro_name}"

    def render(self) -> str:
        return (
            f"#ifdef {self.macro_name}\n"
            f"static {self.c_type} {self.accessor_name}(void)\n"
            "{\n"
            f"    {self.c_type} result = {self.macro_name};\n"
            "    return result;\n"
            "}\n"
            "#endif\n"
        )


@dataclass(frozen=True)
class MacroFamily:
    """Numbered macros like BTN0_PIN..BTN7_PIN collected into one const array.

    Only the members defined for the board end up in the array, in index order.
    """

    name: str
    c_type: str
    pattern: str
    count: int = 8

    @property
    def accessor_name(self) -> str:
        return f"macro_{self.name}"

    def member_names(self) -> list[str]:
        return [self.pattern.format(index=index) for index in range(self.count)]

    def render(self) -> str:
        members = self.member_names()
        any_defined = " || ".join(f"defined({member})" for member in members)
        lines = [
            f"#if {any_defined}",
            f"const {self.c_type} {self.accessor_name}[] = {{",
        ]
        for member in members:
            lines.extend([f"#ifdef {member}", f"    {member},", "#endif"])
        lines.extend(["};", "#endif", ""])
        return "\n".join(lines)


STRUCT_INITIALIZERS: tuple[MacroInitializer, ...] = (
    MacroInitializer("SOCK_IPV4_EP_ANY", "sock_udp_ep_t"),
    MacroInitializer("SOCK_IPV6_EP_ANY", "sock_udp_ep_t"),
    MacroInitializer("MUTEX_INIT", "mutex_t"),
    # The cast hides the enum type from both generators
    MacroInitializer("STATUS_NOT_FOUND", "thread_status_t"),
    MacroInitializer("GPIO_UNDEF", "gpio_t"),
)

MACRO_FAMILIES: tuple[MacroFamily, ...] = (
    MacroFamily("BTN_PIN", "gpio_t", "BTN{index}_PIN"),
    MacroFamily("BTN_MODE", "gpio_mode_t", "BTN{index}_MODE"),
    MacroFamily("LED_PIN", "gpio_t", "LED{index}_PIN"),
)


def render_accessors(
    initializers: Iterable[MacroInitializer] = STRUCT_INITIALIZERS,
    families: Iterable[MacroFamily] = MACRO_FAMILIES,
) -> str:
    chunks = [ACCESSOR_BANNER, ""]
    for entry in initializers:
        chunks.append(entry.render())
    for family in families:
        chunks.append(family.render())
    return "\n".join(chunks)


def render_synthetic_source(
    prelude: str,
    initializers: Iterable[MacroInitializer] = STRUCT_INITIALIZERS,
    families: Iterable[MacroFamily] = MACRO_FAMILIES,
) -> str:
    if prelude and not prelude.endswith("\n"):
        prelude += "\n"
    return f"{prelude}\n{render_accessors(initializers, families)}"


def materialize(
    prelude_path: Path,
    output_path: Path,
    initializers: Iterable[MacroInitializer] = STRUCT_INITIALIZERS,
    families: Iterable[MacroFamily] = MACRO_FAMILIES,
) -> Path:
    """Write the synthetic source from scratch, replacing whatever a previous run left."""
    content = render_synthetic_source(read_text(prelude_path), initializers, families)
    write_text(output_path, content)
    return output_path


def parse_defined_macros(dump: str) -> set[str]:
    """Names from a ``-dM -E`` dump."""
    return set(DEFINE_LINE_RE.findall(dump))


def definedness_report(
    defined: set[str],
    initializers: Iterable[MacroInitializer] = STRUCT_INITIALIZERS,
    families: Iterable[MacroFamily] = MACRO_FAMILIES,
) -> dict[str, Any]:
    report: dict[str, Any] = {"initializers": {}, "families": {}}
    for entry in initializers:
        report["initializers"][entry.macro_name] = {
            "accessor": entry.accessor_name,
            "defined": entry.macro_name in defined,
        }
    for family in families:
        present = [member for member in family.member_names() if member in defined]
        report["families"][family.name] = {
            "accessor": family.accessor_name,
            "defined_members": present,
            "length": len(present),
        }
    return report
