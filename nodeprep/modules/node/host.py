"""Host introspection.

Host facts are read from the kernel's own interfaces (/proc, /sys) and from
structured command output rather than by matching human-readable text. All
paths are resolved under a configurable root so the checks can be pointed at
a staged filesystem.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import HostState
from .runner import CommandRunner
from .utils import active_swap_entries, parse_key_values, parse_meminfo

logger = logging.getLogger("nodeprep.node.host")

SELINUX_CONFIG = '/etc/selinux/config'
FSTAB = '/etc/fstab'


class HostInspector:
    """Reads the current state of the host."""

    def __init__(self, runner: CommandRunner, root: str = '/'):
        self.runner = runner
        self.root = Path(root)

    def path(self, path: str) -> Path:
        """Resolve an absolute host path under the configured root."""
        return self.root / path.lstrip('/')

    def _read(self, path: str) -> Optional[str]:
        try:
            return self.path(path).read_text(encoding='utf-8')
        except OSError:
            return None

    def os_release(self) -> Dict[str, str]:
        return parse_key_values(self._read('/etc/os-release') or '')

    # Swap

    def swap_totals(self) -> Dict[str, int]:
        """Return swap total and used in kB from /proc/meminfo."""
        meminfo = parse_meminfo(self._read('/proc/meminfo') or '')
        total = meminfo.get('SwapTotal', 0)
        return {'total': total, 'used': total - meminfo.get('SwapFree', total)}

    def swap_devices(self) -> List[str]:
        """Return the swap devices currently in use according to /proc/swaps."""
        lines = (self._read('/proc/swaps') or '').splitlines()[1:]
        return [line.split()[0] for line in lines if line.strip()]

    def fstab_swap_entries(self) -> List[str]:
        return active_swap_entries(self._read(FSTAB) or '')

    # Mandatory access control

    def selinux_runtime(self) -> str:
        """Return 'enforcing', 'permissive' or 'disabled'."""
        value = self._read('/sys/fs/selinux/enforce')
        if value is None:
            return 'disabled'
        return 'enforcing' if value.strip() == '1' else 'permissive'

    def selinux_persisted(self) -> Optional[str]:
        text = self._read(SELINUX_CONFIG)
        if text is None:
            return None
        return parse_key_values(text).get('SELINUX', '').lower() or None

    # Kernel

    def module_loaded(self, name: str) -> bool:
        """Check /sys/module, which lists loadable and built-in modules alike."""
        return self.path(f'/sys/module/{name}').is_dir()

    def sysctl_value(self, key: str) -> Optional[str]:
        value = self._read('/proc/sys/' + key.replace('.', '/'))
        return value.strip() if value is not None else None

    # Services

    def service_active(self, name: str) -> bool:
        return self.runner.output(['systemctl', 'is-active', name]) == 'active'

    def service_enabled(self, name: str) -> bool:
        return self.runner.output(['systemctl', 'is-enabled', name]) == 'enabled'

    # Container runtime

    def runtime_version(self) -> Optional[str]:
        """Return the version CRI-O reports about itself."""
        if not self.runner.which('crio'):
            return None
        output = self.runner.output(['crio', 'version', '--json'])
        try:
            return json.loads(output).get('version')
        except (ValueError, AttributeError):
            logger.debug("crio version --json unavailable, falling back to --version")
        match = re.search(r'(\d+\.\d+\.\d+)', self.runner.output(['crio', '--version']))
        return match.group(1) if match else None

    def runtime_info(self) -> Optional[Dict[str, Any]]:
        """Return the CRI status reported by ``crictl info``, or None if unreachable."""
        result = self.runner.query(['crictl', 'info'])
        if result.returncode != 0:
            return None
        try:
            return json.loads(result.stdout)
        except ValueError:
            return None

    def snapshot(self, modules: Iterable[str], sysctl_keys: Iterable[str]) -> HostState:
        """Take a snapshot of every fact the preparation steps converge on."""
        swap = self.swap_totals()
        return HostState(
            swap_total_kb=swap['total'],
            swap_used_kb=swap['used'],
            swap_devices=self.swap_devices(),
            fstab_swap_entries=self.fstab_swap_entries(),
            selinux_runtime=self.selinux_runtime(),
            selinux_persisted=self.selinux_persisted(),
            firewall_active=self.service_active('firewalld'),
            modules_loaded={name: self.module_loaded(name) for name in modules},
            sysctl={key: self.sysctl_value(key) for key in sysctl_keys},
            runtime_active=self.service_active('crio'),
            runtime_version=self.runtime_version(),
            kubelet_active=self.service_active('kubelet'),
        )
