from .generation import command_generate
from .inspection import command_introspect, command_macros, command_materialize
from .patching import command_patch

__all__ = [
    "command_generate",
    "command_introspect",
    "command_macros",
    "command_materialize",
    "command_patch",
]
