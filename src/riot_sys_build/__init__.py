from .config import Catalogs, PipelineInputs, load_catalogs, resolve_inputs
from .errors import (
    ArtifactIOError,
    ConfigurationError,
    RiotSysBuildError,
    ToolInvocationError,
    UndefinedMacroError,
)
from .macros import MacroFamily, MacroInitializer, render_synthetic_source
from .orchestrator import CompileCommand, build_compile_command
from .patcher import CallingConventionTable, ConventionPolicy, RewriteRule, reconcile
from .pipeline import run_pipeline
from .toolchain import CompileEnvironment, FlagDenyList, introspect
from .tools import ExternalTool, SubprocessTool, ToolResult, Toolset

__version__ = "0.7.0"

__all__ = [
    "ArtifactIOError",
    "CallingConventionTable",
    "Catalogs",
    "CompileCommand",
    "CompileEnvironment",
    "ConfigurationError",
    "ConventionPolicy",
    "ExternalTool",
    "FlagDenyList",
    "MacroFamily",
    "MacroInitializer",
    "PipelineInputs",
    "RewriteRule",
    "RiotSysBuildError",
    "SubprocessTool",
    "ToolInvocationError",
    "ToolResult",
    "Toolset",
    "UndefinedMacroError",
    "build_compile_command",
    "introspect",
    "load_catalogs",
    "reconcile",
    "render_synthetic_source",
    "resolve_inputs",
    "run_pipeline",
]
