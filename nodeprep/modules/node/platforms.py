"""Platform variants.

A Platform wraps the package manager, repository layout, firewall and
mandatory access control of one distribution family. The variant is selected
once at startup from /etc/os-release.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

import requests

from .errors import NetworkError, UnsupportedPlatformError
from .host import SELINUX_CONFIG, HostInspector
from .runner import CommandRunner
from .utils import render_template, set_key_value

logger = logging.getLogger("nodeprep.node.platforms")


@dataclass
class Repository:
    """A signed package repository published for both rpm and deb."""
    name: str
    title: str
    base_url: str
    exclude: List[str] = field(default_factory=list)

    @property
    def rpm_url(self) -> str:
        return f"{self.base_url}rpm/"

    @property
    def deb_url(self) -> str:
        return f"{self.base_url}deb/"

    @property
    def deb_key_url(self) -> str:
        return f"{self.deb_url}Release.key"


def crio_repository(version: str) -> Repository:
    return Repository(
        name='cri-o',
        title='CRI-O',
        base_url=f"https://download.opensuse.org/repositories/isv:/cri-o:/stable:/{version}/",
    )


def kubernetes_repository(version: str) -> Repository:
    return Repository(
        name='kubernetes',
        title='Kubernetes',
        base_url=f"https://pkgs.k8s.io/core:/stable:/{version}/",
        exclude=['kubelet', 'kubeadm', 'kubectl', 'cri-tools', 'kubernetes-cni'],
    )


class Platform:
    """Operations every supported distribution family provides."""
    name = 'generic'
    ids: Tuple[str, ...] = ()
    dns_utility_package = ''
    manages_mac = False
    manages_firewall = False

    def __init__(self, runner: CommandRunner, inspector: HostInspector, http_timeout: float = 30.0):
        self.runner = runner
        self.inspector = inspector
        self.http_timeout = http_timeout

    def install_packages(self, packages: List[str], repository: Optional[str] = None) -> None:
        raise NotImplementedError

    def is_installed(self, package: str) -> bool:
        raise NotImplementedError

    def register_repository(self, repo: Repository) -> bool:
        """Register a signed repository; return True if anything changed."""
        raise NotImplementedError

    def refresh_metadata(self) -> None:
        raise NotImplementedError

    def hold_packages(self, packages: List[str]) -> None:
        """Keep packages from being upgraded unattended."""

    def relax_mac(self) -> None:
        """Put mandatory access control into a mode the runtime tolerates."""

    def mac_relaxed(self) -> bool:
        return True

    def disable_firewall(self) -> None:
        """Stop and disable the host firewall."""

    def firewall_inactive(self) -> bool:
        return True

    def _download(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.http_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to download {url}: {e}") from e
        return response.content


class RockyPlatform(Platform):
    """Rocky/Alma/RHEL 9: dnf, .repo files, SELinux and firewalld."""
    name = 'rocky'
    ids = ('rocky', 'almalinux', 'rhel', 'centos')
    dns_utility_package = 'bind-utils'
    manages_mac = True
    manages_firewall = True

    def install_packages(self, packages: List[str], repository: Optional[str] = None) -> None:
        args = ['dnf', 'install', '-y', *packages]
        if repository:
            args.append(f'--disableexcludes={repository}')
        logger.info(f"📦 Installing {' '.join(packages)}...")
        self.runner.run(args)

    def is_installed(self, package: str) -> bool:
        return self.runner.succeeds(['rpm', '-q', package])

    def register_repository(self, repo: Repository) -> bool:
        path = self.inspector.path(f'/etc/yum.repos.d/{repo.name}.repo')
        changed = self.runner.write_file(path, render_template('yum.repo.j2', repo=repo))
        if changed:
            logger.info(f"Added {repo.title} repository at {path}")
            logger.info("Cleaning DNF cache...")
            self.runner.run(['dnf', 'clean', 'all'])
        else:
            logger.info(f"{repo.title} repository already registered")
        return changed

    def refresh_metadata(self) -> None:
        self.runner.run(['dnf', 'makecache'])

    def hold_packages(self, packages: List[str]) -> None:
        # The repository definition excludes these from plain 'dnf upgrade'.
        logger.debug(f"{', '.join(packages)} held through repository excludes")

    def relax_mac(self) -> None:
        if self.inspector.selinux_runtime() == 'enforcing':
            self.runner.run(['setenforce', '0'])
        path = self.inspector.path(SELINUX_CONFIG)
        if not path.exists():
            logger.info("SELinux is not configured on this host")
            return
        if self.inspector.selinux_persisted() == 'disabled':
            return
        text, changed = set_key_value(path.read_text(), 'SELINUX', 'permissive')
        if changed:
            self.runner.write_file(path, text)

    def mac_relaxed(self) -> bool:
        relaxed = ('permissive', 'disabled')
        persisted = self.inspector.selinux_persisted()
        return self.inspector.selinux_runtime() in relaxed and persisted in relaxed + (None,)

    def disable_firewall(self) -> None:
        if not self.runner.succeeds(['systemctl', 'cat', 'firewalld.service']):
            logger.info("firewalld is not installed")
            return
        self.runner.run(['systemctl', 'stop', 'firewalld'])
        self.runner.run(['systemctl', 'disable', 'firewalld'])

    def firewall_inactive(self) -> bool:
        return not self.inspector.service_active('firewalld')


class DebianPlatform(Platform):
    """Debian 12 / Ubuntu 22.04+: apt, dearmored keyrings and signed-by lists."""
    name = 'debian'
    ids = ('debian', 'ubuntu')
    dns_utility_package = 'dnsutils'

    APT_ENV: Dict[str, str] = {'DEBIAN_FRONTEND': 'noninteractive'}

    def __init__(self, runner: CommandRunner, inspector: HostInspector, http_timeout: float = 30.0):
        super().__init__(runner, inspector, http_timeout)
        self.metadata_fresh = False

    def install_packages(self, packages: List[str], repository: Optional[str] = None) -> None:
        # Minimal images ship with empty package lists
        if not self.metadata_fresh:
            self.refresh_metadata()
        logger.info(f"📦 Installing {' '.join(packages)}...")
        self.runner.run(
            ['apt-get', 'install', '-y', '--no-install-recommends', *packages],
            env=self.APT_ENV,
        )

    def is_installed(self, package: str) -> bool:
        status = self.runner.output(['dpkg-query', '-W', '-f=${Status}', package])
        return status == 'install ok installed'

    def register_repository(self, repo: Repository) -> bool:
        keyring = self.inspector.path(f'/etc/apt/keyrings/{repo.name}-apt-keyring.gpg')
        changed = False
        if not keyring.exists():
            if not self.runner.which('gpg'):
                self.install_packages(['gpg'])
            logger.info(f"Importing {repo.title} signing key from {repo.deb_key_url}")
            if self.runner.dry_run:
                logger.info(f"[DRY RUN] Would install signing key at {keyring}")
            else:
                key = self._download(repo.deb_key_url)
                keyring.parent.mkdir(parents=True, exist_ok=True)
                self.runner.run(['gpg', '--dearmor', '--yes', '-o', str(keyring)], input=key)
            changed = True

        listing = self.inspector.path(f'/etc/apt/sources.list.d/{repo.name}.list')
        content = render_template('apt.list.j2', repo=repo, keyring=f'/etc/apt/keyrings/{keyring.name}')
        changed = self.runner.write_file(listing, content) or changed
        if changed:
            logger.info(f"Added {repo.title} repository at {listing}")
        else:
            logger.info(f"{repo.title} repository already registered")
        return changed

    def refresh_metadata(self) -> None:
        self.runner.run(['apt-get', 'update'], env=self.APT_ENV)
        self.metadata_fresh = True

    def hold_packages(self, packages: List[str]) -> None:
        self.runner.run(['apt-mark', 'hold', *packages])


PLATFORMS: Dict[str, Type[Platform]] = {
    RockyPlatform.name: RockyPlatform,
    DebianPlatform.name: DebianPlatform,
}


def detect_platform(inspector: HostInspector, override: str = 'auto') -> Type[Platform]:
    """Select the platform variant for this host.

    Args:
        inspector: Reads /etc/os-release
        override: 'auto' or an explicit platform name

    Returns:
        The Platform subclass to use

    Raises:
        UnsupportedPlatformError: If the distribution is not supported
    """
    if override != 'auto':
        try:
            return PLATFORMS[override]
        except KeyError:
            raise UnsupportedPlatformError(f"Unknown platform: {override}")

    release = inspector.os_release()
    candidates = [release.get('ID', '')] + release.get('ID_LIKE', '').split()
    for candidate in candidates:
        for platform in PLATFORMS.values():
            if candidate.lower() in platform.ids:
                logger.debug(f"Detected {release.get('PRETTY_NAME', candidate)} as {platform.name}")
                return platform
    raise UnsupportedPlatformError(
        f"Unsupported distribution: {release.get('PRETTY_NAME') or release.get('ID') or 'unknown'}"
    )
