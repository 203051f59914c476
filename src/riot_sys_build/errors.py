from __future__ import annotations


class RiotSysBuildError(Exception):
    pass


class ConfigurationError(RiotSysBuildError):
    pass


class ArtifactIOError(RiotSysBuildError):
    pass


class ToolInvocationError(RiotSysBuildError):
    """An external tool could not be started or exited non-zero.

    ``exit_code`` is None when the process never ran.
    """

    def __init__(
        self,
        tool: str,
        command: str,
        exit_code: int | None,
        stderr: str = "",
        message: str | None = None,
    ) -> None:
        self.tool = tool
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        if message is None:
            if exit_code is None:
                message = f"{tool} could not be started; command={command}"
            else:
                message = f"{tool} failed with exit code {exit_code}; command={command}"
        super().__init__(message)


class UndefinedMacroError(ToolInvocationError):
    """The transpiler rejected the synthetic source because catalog macros are missing."""

    def __init__(self, tool: str, command: str, exit_code: int | None, stderr: str, macros: list[str]) -> None:
        self.macros = list(macros)
        super().__init__(
            tool,
            command,
            exit_code,
            stderr,
            message=(
                f"{tool} failed with exit code {exit_code}: macro accessor(s) for "
                f"{', '.join(self.macros)} did not compile for this target; command={command}"
            ),
        )
