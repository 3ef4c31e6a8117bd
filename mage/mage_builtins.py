"""
The default builtin functions available to every Mage script.

Builtins receive their arguments as display strings and return `None`,
`str`, `float`, `bool` or a list of strings. Failures raise `BuiltinError`.
"""
import inspect
import os
import platform
import shutil
import stat
import sys
from typing import Any, Callable, Dict, List, Optional

import httpx

from mage.mage_datatypes import BuiltinError
from mage.mage_http import http_download
from mage.mage_shell import run_command


PACKAGE_MANAGERS = (
    "apt", "yum", "dnf", "pacman", "zypper", "emerge",
    "brew", "port",
    "winget", "choco", "scoop",
    "pip", "npm", "cargo", "gem",
)

PRIMARY_MANAGERS = {
    "linux": ("apt", "yum", "dnf", "pacman", "zypper", "emerge"),
    "macos": ("brew", "port"),
    "windows": ("winget", "choco", "scoop"),
}

WINDOWS_EXECUTABLE_EXTS = ("exe", "bat", "cmd", "ps1")

# Commands that exit 0 when a package is installed.
INSTALLED_CHECKS = {
    "apt": "dpkg -l | grep -q '^ii.*{name}'",
    "yum": "rpm -q {name}",
    "dnf": "rpm -q {name}",
    "pacman": "pacman -Q {name}",
    "brew": "brew list | grep -q {name}",
    "winget": "winget list | findstr {name}",
    "choco": "choco list --local-only | findstr {name}",
}

# Package names that differ between managers.
PACKAGE_NAMES = {
    "nodejs": {"apt": "nodejs", "yum": "nodejs", "dnf": "nodejs", "brew": "node",
               "choco": "nodejs", "winget": "OpenJS.NodeJS"},
    "git": {"apt": "git", "yum": "git", "dnf": "git", "brew": "git",
            "choco": "git", "winget": "Git.Git"},
    "python3": {"apt": "python3", "yum": "python3", "dnf": "python3", "brew": "python@3.11",
                "choco": "python3", "winget": "Python.Python.3"},
}


def _arity(name: str, args: List[str], count: int, *params: str):
    if len(args) != count:
        noun = "argument" if count == 1 else "arguments"
        raise BuiltinError(f"{name}() requires exactly {count} {noun}: {', '.join(params)}")


def map_package_name(package: str, manager: str) -> str:
    return PACKAGE_NAMES.get(package, {}).get(manager, package)


def detect_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "macos"
    if sys.platform in ("win32", "cygwin"):
        return "windows"
    return sys.platform


def detect_architecture() -> str:
    machine = platform.machine().lower()
    match machine:
        case "amd64" | "x86_64" | "x64":
            return "x86_64"
        case "arm64" | "aarch64":
            return "aarch64"
        case "i386" | "i686":
            return "x86"
    return machine


class Builtins:
    """Registry of builtin functions.

    Every method named `_<name>` is exposed to scripts as `<name>`.
    """
    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        self.transport = transport
        self.functions: Dict[str, Callable[..., Any]] = {}
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                self.functions[name[1:]] = member

    def is_builtin(self, name: str) -> bool:
        return name in self.functions

    def call(self, name: str, args: List[str]) -> Any:
        func = self.functions.get(name)
        if func is None:
            raise BuiltinError(f"Unknown builtin function: {name}")
        return func(list(args))

    # --- System Information ---
    def _platform(self, args):
        return detect_platform()

    def _architecture(self, args):
        return detect_architecture()

    def _home_directory(self, args):
        return os.path.expanduser("~")

    def _current_directory(self, args):
        try:
            return os.getcwd()
        except OSError:
            return "."

    # --- File System ---
    def _file_exists(self, args):
        _arity("file_exists", args, 1, "path")
        return os.path.exists(args[0])

    def _directory_exists(self, args):
        _arity("directory_exists", args, 1, "path")
        return os.path.isdir(args[0])

    def _ensure_directory(self, args):
        _arity("ensure_directory", args, 1, "path")
        try:
            os.makedirs(args[0], exist_ok=True)
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to create directory '{args[0]}': {e}") from e
        return True

    def _copy_file(self, args):
        _arity("copy_file", args, 2, "source", "destination")
        try:
            shutil.copy(args[0], args[1])
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to copy '{args[0]}' to '{args[1]}': {e}") from e
        return True

    def _write_file(self, args):
        _arity("write_file", args, 2, "path", "content")
        path, content = args
        parent = os.path.dirname(path)
        if parent and not os.path.exists(parent):
            try:
                os.makedirs(parent)
            except (OSError, ValueError) as e:
                raise BuiltinError(f"Failed to create parent directory: {e}") from e
        try:
            with open(path, 'w', encoding='utf-8') as fh:
                fh.write(content)
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to write file '{path}': {e}") from e
        return True

    def _remove_file(self, args):
        _arity("remove_file", args, 1, "path")
        if not os.path.exists(args[0]):
            return False
        try:
            os.remove(args[0])
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to remove file '{args[0]}': {e}") from e
        return True

    def _remove_directory(self, args):
        _arity("remove_directory", args, 1, "path")
        if not os.path.exists(args[0]):
            return False
        try:
            shutil.rmtree(args[0])
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to remove directory '{args[0]}': {e}") from e
        return True

    def _symlink(self, args):
        _arity("symlink", args, 2, "source", "target")
        try:
            os.symlink(args[0], args[1])
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to create symlink from '{args[0]}' to '{args[1]}': {e}") from e
        return True

    def _make_executable(self, args):
        _arity("make_executable", args, 1, "path")
        path = args[0]
        if not os.path.exists(path):
            raise BuiltinError(f"File '{path}' does not exist")
        if detect_platform() == "windows":
            return True
        try:
            mode = os.stat(path).st_mode
            os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except (OSError, ValueError) as e:
            raise BuiltinError(f"Failed to make '{path}' executable: {e}") from e
        return True

    def _is_executable(self, args):
        _arity("is_executable", args, 1, "path")
        path = args[0]
        if detect_platform() == "windows":
            ext = os.path.splitext(path)[1].lstrip('.').lower()
            return ext in WINDOWS_EXECUTABLE_EXTS
        try:
            return bool(os.stat(path).st_mode & 0o111)
        except (OSError, ValueError):
            return False

    # --- Package Managers ---
    def _detect_package_managers(self, args):
        return [pm for pm in PACKAGE_MANAGERS if shutil.which(pm)]

    def _get_primary_package_manager(self, args):
        available = self._detect_package_managers([])
        for pm in PRIMARY_MANAGERS.get(detect_platform(), ()):
            if pm in available:
                return pm
        return available[0] if available else "none"

    def _package_manager_available(self, args):
        _arity("package_manager_available", args, 1, "manager_name")
        return shutil.which(args[0]) is not None

    def _package_installed(self, args):
        _arity("package_installed", args, 1, "package_name")
        pm = self._get_primary_package_manager([])
        name = map_package_name(args[0], pm)
        template = INSTALLED_CHECKS.get(pm)
        if template is None:
            return False
        command = template.format(name=name)
        try:
            result = run_command(command, "sh")
        except OSError:
            return False
        return result.success

    # --- Network ---
    def _download(self, args):
        _arity("download", args, 2, "url", "path")
        url, path = args
        try:
            http_download(url, path, transport=self.transport)
        except (httpx.HTTPError, httpx.InvalidURL, RuntimeError, OSError, ValueError) as e:
            raise BuiltinError(f"Failed to download '{url}': {e}") from e
        return True

    # --- Environment ---
    def _env_var(self, args):
        if not args or len(args) > 2:
            raise BuiltinError("env_var() requires 1 or 2 arguments: name, [default]")
        default = args[1] if len(args) == 2 else ""
        return os.environ.get(args[0], default)
