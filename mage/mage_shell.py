"""
Shell resolution and synchronous command execution for `evoke` and `imbue`.
"""
import os
import platform
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Optional


FALLBACK_SHELLS = ("bash", "zsh", "fish", "sh")


def is_windows() -> bool:
    return platform.system().lower().startswith("win")


def resolve_shell(override: Optional[str] = None) -> List[str]:
    """Returns the argv prefix used to run a command string.

    Resolution order: explicit override, `MAGE_SHELL`, `SHELL`, the first
    of bash/zsh/fish/sh found on PATH, and finally plain `sh`. Windows
    always uses `cmd /C`.
    """
    if is_windows():
        return ["cmd", "/C"]
    if override:
        return [override, "-c"]
    for var in ("MAGE_SHELL", "SHELL"):
        shell = os.environ.get(var)
        if shell:
            return [shell, "-c"]
    for shell in FALLBACK_SHELLS:
        if shutil.which(shell):
            return [shell, "-c"]
    return ["sh", "-c"]


@dataclass
class CommandResult:
    """The captured outcome of one shell command."""
    exit_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def run_command(command: str, shell_override: Optional[str] = None) -> CommandResult:
    """Runs `command` through the resolved shell and waits for it.

    A process killed by a signal reports exit code 1. Raises `OSError`
    when the shell itself cannot be started, including when the command
    holds a NUL character.
    """
    argv = resolve_shell(shell_override) + [command]
    try:
        completed = subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except ValueError as e:
        raise OSError(str(e)) from e
    code = completed.returncode if completed.returncode >= 0 else 1
    return CommandResult(
        exit_code=code,
        stdout=completed.stdout.decode("utf-8", errors="replace"),
        stderr=completed.stderr.decode("utf-8", errors="replace"),
    )
