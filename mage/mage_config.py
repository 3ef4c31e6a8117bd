"""
`.mageconfig` handling and shell override discovery.

A `.mageconfig` file holds `key=value` lines; blank lines and lines
starting with `#` are ignored. The `shell` key selects the shell used by
`evoke` and `imbue`; every other key is kept in `options`.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


CONFIG_FILENAME = ".mageconfig"
SHELL_DIRECTIVE = "#!shell:"

DEFAULT_CONFIG = """# Mage Configuration File
# Uncomment and modify settings as needed

# Override default shell
# shell=powershell

# Add custom configuration options below
# option_name=value
"""


@dataclass
class MageConfig:
    shell: Optional[str] = None
    options: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, content: str) -> 'MageConfig':
        config = cls()
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            key, sep, value = line.partition('=')
            if not sep:
                continue
            key, value = key.strip(), value.strip()
            if key == 'shell':
                config.shell = value
            else:
                config.options[key] = value
        return config

    @classmethod
    def load_from_file(cls, path) -> 'MageConfig':
        """Loads a config file. An unreadable file yields an empty config."""
        try:
            content = Path(path).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError):
            return cls()
        return cls.parse(content)

    @classmethod
    def find_config(cls, start=None, home=None) -> Optional['MageConfig']:
        """Searches the start directory, its parents, then the home directory."""
        path = find_config_path(start, home)
        return cls.load_from_file(path) if path is not None else None


def find_config_path(start=None, home=None) -> Optional[Path]:
    start_dir = (Path(start) if start is not None else Path.cwd()).resolve()
    for directory in (start_dir, *start_dir.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    home_dir = Path(home) if home is not None else Path(os.path.expanduser("~"))
    candidate = home_dir / CONFIG_FILENAME
    if candidate.exists():
        return candidate
    return None


def write_default_config(directory=None) -> Optional[Path]:
    """Creates a commented `.mageconfig` template.

    Returns the new path, or None when a config already exists there.
    """
    path = Path(directory or ".") / CONFIG_FILENAME
    if path.exists():
        return None
    path.write_text(DEFAULT_CONFIG, encoding='utf-8')
    return path


def extract_shell_override(source: str) -> Optional[str]:
    """Reads a `#!shell:<name>` directive from the first line of a script."""
    lines = (source or "").splitlines()
    first_line = lines[0] if lines else ""
    if first_line.startswith(SHELL_DIRECTIVE):
        return first_line[len(SHELL_DIRECTIVE):].strip()
    return None


def resolve_shell_override(cli_shell: Optional[str] = None, source: Optional[str] = None,
                           config: Optional[MageConfig] = None) -> Optional[str]:
    """CLI flag, then the script directive, then the config file."""
    if cli_shell:
        return cli_shell
    script_shell = extract_shell_override(source or "")
    if script_shell:
        return script_shell
    if config is not None and config.shell:
        return config.shell
    return None
