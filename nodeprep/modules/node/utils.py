"""Utility functions for node preparation."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from .errors import ConfigurationError

logger = logging.getLogger("nodeprep.node.utils")

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def render_template(name: str, **context: Any) -> str:
    """Render one of the packaged templates.

    Args:
        name: Template file name, e.g. 'sysctl.conf.j2'
        **context: Variables available to the template

    Returns:
        str: The rendered text

    Raises:
        ConfigurationError: If the template is missing or references an undefined variable
    """
    try:
        return _env.get_template(name).render(**context)
    except TemplateError as e:
        raise ConfigurationError(f"Failed to render template {name}: {e}") from e


def write_file(path: Path, content: str, mode: int = 0o644) -> bool:
    """Write a file only when its content differs.

    Args:
        path: Destination path
        content: Desired file content
        mode: File permissions (default: 0o644)

    Returns:
        bool: True if the file was created or changed
    """
    if path.exists() and path.read_text(encoding='utf-8') == content:
        logger.debug(f"{path} already up to date")
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding='utf-8')
    os.chmod(path, mode)
    logger.debug(f"Wrote {path}")
    return True


def file_matches(path: Path, content: str) -> bool:
    """Check that a file exists with exactly the given content."""
    try:
        return path.read_text(encoding='utf-8') == content
    except OSError:
        return False


def _is_swap_entry(line: str) -> bool:
    fields = line.split()
    return len(fields) >= 3 and not fields[0].startswith('#') and fields[2] == 'swap'


def active_swap_entries(fstab: str) -> List[str]:
    """Return the uncommented swap entries of an fstab."""
    return [line for line in fstab.splitlines() if _is_swap_entry(line)]


def comment_swap_entries(fstab: str) -> Tuple[str, bool]:
    """Comment out every active swap entry of an fstab.

    Args:
        fstab: Current fstab content

    Returns:
        tuple: (new_content, changed)
    """
    lines = []
    changed = False
    for line in fstab.splitlines(keepends=True):
        if _is_swap_entry(line):
            line = f"#{line}"
            changed = True
        lines.append(line)
    return ''.join(lines), changed


def set_key_value(text: str, key: str, value: str) -> Tuple[str, bool]:
    """Set ``KEY=value`` in a shell-style config file, appending it if absent.

    Returns:
        tuple: (new_content, changed)
    """
    pattern = re.compile(rf'^{re.escape(key)}=.*$', re.MULTILINE)
    wanted = f"{key}={value}"
    if pattern.search(text):
        new_text = pattern.sub(wanted, text)
    else:
        new_text = text
        if new_text and not new_text.endswith('\n'):
            new_text += '\n'
        new_text += f"{wanted}\n"
    return new_text, new_text != text


def parse_key_values(text: str) -> Dict[str, str]:
    """Parse a shell-style ``KEY=value`` file such as /etc/os-release."""
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, _, value = line.partition('=')
        values[key.strip()] = value.strip().strip('"\'')
    return values


def parse_meminfo(text: str) -> Dict[str, int]:
    """Parse /proc/meminfo into kB values."""
    values = {}
    for line in text.splitlines():
        name, _, rest = line.partition(':')
        parts = rest.split()
        if parts and parts[0].isdigit():
            values[name.strip()] = int(parts[0])
    return values
