"""Fixtures simulating a Linux host under a temporary root."""
import io
import json
import subprocess
import tarfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from nodeprep.modules.node import CommandRunner, HostInspector, PrepConfig
from nodeprep.modules.node.errors import InstallationError

ROCKY_OS_RELEASE = 'NAME="Rocky Linux"\nID="rocky"\nID_LIKE="rhel centos fedora"\nPRETTY_NAME="Rocky Linux 9.4 (Blue Onyx)"\n'
UBUNTU_OS_RELEASE = 'NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n'

FSTAB = (
    "UUID=1234 /     xfs  defaults 0 0\n"
    "UUID=5678 /boot xfs  defaults 0 0\n"
    "/dev/mapper/rl-swap none swap defaults 0 0\n"
)


class FakeHost(CommandRunner):
    """A CommandRunner that simulates systemd, the package manager and the kernel.

    Effects are written under ``root`` so HostInspector observes them the same
    way it reads a real host.
    """

    def __init__(self, root: Path, os_release: str = ROCKY_OS_RELEASE, dry_run: bool = False):
        super().__init__(dry_run=dry_run)
        self.root = root
        self.calls = []
        self.packages = set()
        self.services = {}
        self.binaries = {'gpg'}
        self.broken_modules = set()
        self.crio_version = '1.33.2'
        self.runtime_ready = True

        self.write('/etc/os-release', os_release)
        self.write('/etc/fstab', FSTAB)
        self.write('/proc/swaps', "Filename\tType\tSize\tUsed\tPriority\n/dev/dm-1 partition\t2097148\t0\t-2\n")
        self.write('/proc/meminfo', "MemTotal:  8000000 kB\nSwapTotal: 2097148 kB\nSwapFree:  2097148 kB\n")
        if 'rocky' in os_release:
            self.services['firewalld'] = {'active': True, 'enabled': True}
            self.write('/sys/fs/selinux/enforce', '1')
            self.write('/etc/selinux/config', "SELINUX=enforcing\nSELINUXTYPE=targeted\n")
        for key in ('net/ipv4/ip_forward', 'net/bridge/bridge-nf-call-iptables',
                    'net/bridge/bridge-nf-call-ip6tables'):
            self.write(f'/proc/sys/{key}', '0\n')

    def path(self, path: str) -> Path:
        return self.root / path.lstrip('/')

    def write(self, path: str, content: str) -> None:
        target = self.path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)

    def which(self, name):
        return f'/usr/bin/{name}' if name in self.binaries else None

    def commands(self, name):
        """Return every recorded call of the given program."""
        return [call for call in self.calls if call[0] == name]

    def _execute(self, args, check=True, input=None, timeout=None, env=None):
        args = list(args)
        self.calls.append(args)
        handler = getattr(self, f"_{args[0].replace('-', '_')}", None)
        returncode, stdout = handler(args) if handler else (0, '')
        if check and returncode != 0:
            raise InstallationError(f"Command failed with exit code {returncode}: {' '.join(args)}")
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr='')

    # Simulated programs

    def _swapoff(self, args):
        self.write('/proc/swaps', "Filename\tType\tSize\tUsed\tPriority\n")
        self.write('/proc/meminfo', "MemTotal:  8000000 kB\nSwapTotal: 0 kB\nSwapFree:  0 kB\n")
        return 0, ''

    def _setenforce(self, args):
        self.write('/sys/fs/selinux/enforce', args[1])
        return 0, ''

    def _modprobe(self, args):
        if args[1] in self.broken_modules:
            return 1, ''
        self.path(f'/sys/module/{args[1]}').mkdir(parents=True, exist_ok=True)
        return 0, ''

    def _sysctl(self, args):
        for conf in sorted(self.path('/etc/sysctl.d').glob('*.conf')):
            for line in conf.read_text().splitlines():
                if '=' not in line or line.startswith('#'):
                    continue
                key, _, value = line.partition('=')
                key = key.strip()
                if key.startswith('net.bridge.') and not self.path('/sys/module/br_netfilter').is_dir():
                    continue
                self.write('/proc/sys/' + key.replace('.', '/'), value.strip() + '\n')
        return 0, ''

    def _systemctl(self, args):
        verb, name = args[1], args[-1]
        unit = self.services.get(name.replace('.service', ''))
        if verb == 'is-active':
            return (0, 'active') if unit and unit['active'] else (3, 'inactive')
        if verb == 'is-enabled':
            return (0, 'enabled') if unit and unit['enabled'] else (1, 'disabled')
        if verb == 'cat':
            return (0, '') if unit else (1, '')
        if verb == 'daemon-reload':
            return 0, ''
        if unit is None:
            return 5, ''
        if verb in ('stop', 'disable'):
            unit['active'] = unit['active'] and verb != 'stop'
            if verb == 'disable':
                unit['enabled'] = False
                if '--now' in args:
                    unit['active'] = False
        elif verb in ('start', 'enable', 'restart'):
            unit['active'] = unit['active'] or verb != 'enable' or '--now' in args
            unit['enabled'] = unit['enabled'] or verb == 'enable'
        return 0, ''

    def _install(self, packages):
        for package in packages:
            self.packages.add(package)
            if package == 'cri-o':
                self.binaries.update({'crio', 'crictl'})
                self.services['crio'] = {'active': False, 'enabled': False}
            elif package == 'kubelet':
                self.services['kubelet'] = {'active': False, 'enabled': False}
            elif package in ('bind-utils', 'dnsutils'):
                self.binaries.add('nslookup')

    def _dnf(self, args):
        if args[1] == 'install':
            self._install([a for a in args[3:] if not a.startswith('--')])
        return 0, ''

    def _rpm(self, args):
        return (0, '') if args[2] in self.packages else (1, '')

    def _apt_get(self, args):
        if args[1] == 'install':
            packages = [a for a in args[2:] if not a.startswith('-')]
            self._install(packages)
            if 'kubelet' in packages:
                # The Debian package enables and starts the kubelet
                self.services['kubelet'] = {'active': True, 'enabled': True}
        return 0, ''

    def _dpkg_query(self, args):
        return 0, 'install ok installed' if args[-1] in self.packages else ''

    def _apt_mark(self, args):
        return 0, ''

    def _gpg(self, args):
        Path(args[args.index('-o') + 1]).write_bytes(b'dearmored')
        return 0, ''

    def _crio(self, args):
        if args[1:] == ['version', '--json']:
            return 0, json.dumps({'version': self.crio_version, 'gitCommit': 'abc'})
        return 0, f'crio version {self.crio_version}'

    def _crictl(self, args):
        if not self.services.get('crio', {}).get('active'):
            return 1, ''
        return 0, json.dumps({'status': {'conditions': [
            {'type': 'RuntimeReady', 'status': self.runtime_ready},
            {'type': 'NetworkReady', 'status': False, 'reason': 'NetworkPluginNotReady'},
        ]}})


def cni_archive() -> bytes:
    """Build a release-shaped CNI plugins tarball."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w:gz') as archive:
        for name in ('bridge', 'host-local', 'loopback', 'portmap', 'dhcp'):
            data = b'#!/bin/sh\n'
            info = tarfile.TarInfo(f'./{name}')
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def rocky_host(tmp_path):
    return FakeHost(tmp_path)


@pytest.fixture
def ubuntu_host(tmp_path):
    return FakeHost(tmp_path, os_release=UBUNTU_OS_RELEASE)


@pytest.fixture
def dry_rocky_host(tmp_path):
    return FakeHost(tmp_path, dry_run=True)


@pytest.fixture
def prep_config(tmp_path):
    return PrepConfig(host_root=str(tmp_path), log_file=str(tmp_path / 'k8s-node-setup.log'))


@pytest.fixture
def inspector_for():
    def make(host):
        return HostInspector(host, root=str(host.root))
    return make


@pytest.fixture
def network():
    """Patch DNS resolution and HTTP so the host appears online."""
    response = MagicMock()
    response.content = cni_archive()
    response.raise_for_status.return_value = None
    with patch('nodeprep.modules.node.steps.socket.getaddrinfo') as getaddrinfo, \
            patch('nodeprep.modules.node.steps.requests.head') as head, \
            patch('nodeprep.modules.node.steps.requests.get', return_value=response) as get:
        getaddrinfo.return_value = [(2, 1, 6, '', ('203.0.113.10', 443))]
        yield {'getaddrinfo': getaddrinfo, 'head': head, 'get': get}
