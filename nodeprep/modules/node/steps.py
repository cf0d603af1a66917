"""Node preparation steps.

Each step pairs an idempotent action with a verification that only observes
host state, so it can be re-checked on a later run. ``NodeSteps.build()``
returns the pipeline in the order the steps must run.
"""

import io
import logging
import socket
import tarfile
from pathlib import Path
from typing import List

import requests

from .config import PrepConfig
from .errors import (
    InstallationError,
    KernelModuleError,
    NetworkError,
    StateVerificationError,
)
from .host import FSTAB, HostInspector
from .models import Step
from .platforms import Platform, crio_repository, kubernetes_repository
from .runner import CommandRunner
from .utils import comment_swap_entries, file_matches, render_template

logger = logging.getLogger("nodeprep.node.steps")

MODULES_LOAD_FILE = '/etc/modules-load.d/k8s.conf'
SYSCTL_FILE = '/etc/sysctl.d/k8s.conf'
CRIO_DROPIN_FILE = '/etc/crio/crio.conf.d/02-cgroup-manager.conf'
REGISTRIES_FILE = '/etc/containers/registries.conf.d/01-unqualified-search.conf'
CNI_VERSION_STAMP = '.nodeprep-version'
CNI_CORE_PLUGINS = ('bridge', 'host-local', 'loopback', 'portmap')
KUBERNETES_TOOLS = ['kubelet', 'kubeadm', 'kubectl']


class NodeSteps:
    """Builds the ordered preparation pipeline for one host."""

    def __init__(
        self,
        config: PrepConfig,
        platform: Platform,
        runner: CommandRunner,
        inspector: HostInspector,
    ):
        self.config = config
        self.platform = platform
        self.runner = runner
        self.inspector = inspector

    def build(self) -> List[Step]:
        """Return the steps in execution order for this platform."""
        steps = [
            Step(
                name='connectivity',
                description='Check outbound connectivity and DNS resolution',
                action=self.install_dns_utility,
                verify=self.verify_connectivity,
                error=NetworkError,
                failure_message='Network connectivity or DNS resolution failed',
            ),
            Step(
                name='swap',
                description='Disable swap',
                action=self.disable_swap,
                verify=self.verify_swap,
                failure_message='Failed to disable swap',
            ),
        ]
        if self.platform.manages_mac:
            steps.append(Step(
                name='selinux',
                description='Set SELinux to permissive mode permanently',
                action=self.platform.relax_mac,
                verify=self.platform.mac_relaxed,
                failure_message='Failed to set SELinux to permissive',
            ))
        if self.platform.manages_firewall:
            steps.append(Step(
                name='firewall',
                description='Stop and disable firewalld',
                action=self.platform.disable_firewall,
                verify=self.platform.firewall_inactive,
                failure_message='Failed to stop/disable firewalld',
            ))
        steps.extend([
            Step(
                name='kernel-modules',
                description='Load kernel modules',
                action=self.load_kernel_modules,
                verify=self.verify_kernel_modules,
                error=KernelModuleError,
                failure_message='Failed to load kernel modules',
            ),
            Step(
                name='sysctl',
                description='Configure sysctl parameters',
                action=self.configure_sysctl,
                verify=self.verify_sysctl,
                failure_message='Failed to configure sysctl parameters',
                requires=('kernel-modules',),
            ),
            Step(
                name='runtime-install',
                description='Install CRI-O',
                action=self.install_runtime,
                verify=self.verify_runtime_installed,
                error=InstallationError,
                failure_message='CRI-O package is not installed',
                requires=('connectivity',),
            ),
            Step(
                name='runtime-config',
                description='Configure CRI-O',
                action=self.configure_runtime,
                verify=self.verify_runtime_config,
                failure_message='CRI-O configuration is not in place',
                requires=('runtime-install',),
            ),
            Step(
                name='runtime-service',
                description='Enable and start CRI-O',
                action=self.start_runtime,
                verify=self.verify_runtime_service,
                failure_message='CRI-O failed to start or incorrect version',
                requires=('runtime-config',),
            ),
            Step(
                name='kubernetes-tools',
                description='Install Kubernetes tools',
                action=self.install_kubernetes_tools,
                verify=self.verify_kubernetes_tools,
                error=InstallationError,
                failure_message='Kubernetes tools are not installed',
                requires=('connectivity',),
            ),
            Step(
                name='cni-plugins',
                description='Install CNI plugins',
                action=self.install_cni_plugins,
                verify=self.verify_cni_plugins,
                error=InstallationError,
                failure_message='CNI plugin binaries are missing',
                requires=('connectivity',),
            ),
            Step(
                name='final-verification',
                description='Verify node preparation',
                action=lambda: None,
                verify=self.verify_node,
                failure_message='System configuration verification failed',
                requires=('swap', 'sysctl', 'runtime-service'),
                on_success=self.log_guidance,
            ),
        ])
        return steps

    # Connectivity

    def install_dns_utility(self) -> None:
        self._probe_hosts()
        if self.runner.which('nslookup'):
            logger.info("DNS lookup utility already installed")
            return
        logger.info(f"Installing {self.platform.dns_utility_package} to use nslookup...")
        self.platform.install_packages([self.platform.dns_utility_package])

    def verify_connectivity(self) -> bool:
        self._probe_hosts()
        return True

    def _probe_hosts(self) -> None:
        """Resolve and reach every probe host, raising NetworkError on the first failure."""
        for host in self.config.probe_hosts:
            try:
                socket.getaddrinfo(host, 443, proto=socket.IPPROTO_TCP)
            except socket.gaierror as e:
                raise NetworkError(
                    f"DNS resolution failed for {host}. Please check your DNS settings. ({e})"
                ) from e
            try:
                requests.head(f"https://{host}/", timeout=self.config.http_timeout, allow_redirects=True)
            except requests.RequestException as e:
                raise NetworkError(
                    f"No connectivity to {host}. Please check your network. ({e})"
                ) from e
            logger.debug(f"{host} is reachable")

    # Swap

    def disable_swap(self) -> None:
        self.runner.run(['swapoff', '-a'])
        fstab = self.inspector.path(FSTAB)
        if not fstab.exists():
            return
        content, changed = comment_swap_entries(fstab.read_text())
        if changed:
            self.runner.write_file(fstab, content)
            logger.info(f"Commented out swap entries in {FSTAB}")

    def verify_swap(self) -> bool:
        totals = self.inspector.swap_totals()
        return (
            totals['total'] == 0
            and not self.inspector.swap_devices()
            and not self.inspector.fstab_swap_entries()
        )

    # Kernel modules

    def load_kernel_modules(self) -> None:
        content = render_template('modules-load.conf.j2', modules=self.config.kernel_modules)
        self.runner.write_file(self.inspector.path(MODULES_LOAD_FILE), content)
        for module in self.config.kernel_modules:
            try:
                loaded = self.runner.run(['modprobe', module], check=False).returncode == 0
            except InstallationError as e:
                logger.warning(f"⚠️  {e}")
                continue
            if not loaded:
                logger.warning(f"⚠️  modprobe {module} failed")

    def verify_kernel_modules(self) -> bool:
        missing = [m for m in self.config.kernel_modules if not self.inspector.module_loaded(m)]
        if missing:
            logger.error(f"Kernel modules not loaded: {', '.join(missing)}")
        return not missing

    # Sysctl

    def configure_sysctl(self) -> None:
        content = render_template('sysctl.conf.j2', params=self.config.sysctl)
        self.runner.write_file(self.inspector.path(SYSCTL_FILE), content)
        self.runner.run(['sysctl', '--system'])

    def verify_sysctl(self) -> bool:
        ok = True
        for key, expected in self.config.sysctl.items():
            actual = self.inspector.sysctl_value(key)
            if actual != expected:
                logger.error(f"{key} = {actual}, expected {expected}")
                ok = False
        return ok

    # Container runtime

    def install_runtime(self) -> None:
        self.platform.register_repository(crio_repository(self.config.crio_version))
        self.platform.refresh_metadata()
        if self.platform.is_installed('cri-o'):
            logger.info("CRI-O already installed")
            return
        self.platform.install_packages(['cri-o'])

    def verify_runtime_installed(self) -> bool:
        return self.platform.is_installed('cri-o')

    def _runtime_files(self):
        return [
            (self.inspector.path(CRIO_DROPIN_FILE), render_template('crio-cgroup.conf.j2')),
            (
                self.inspector.path(REGISTRIES_FILE),
                render_template('registries.conf.j2', registries=self.config.registries),
            ),
        ]

    def configure_runtime(self) -> None:
        changed = False
        for path, content in self._runtime_files():
            changed = self.runner.write_file(path, content) or changed
        if changed and self.inspector.service_active('crio'):
            logger.info("CRI-O configuration changed, restarting crio")
            self.runner.run(['systemctl', 'restart', 'crio'])

    def verify_runtime_config(self) -> bool:
        return all(file_matches(path, content) for path, content in self._runtime_files())

    def start_runtime(self) -> None:
        self.runner.run(['systemctl', 'daemon-reload'])
        self.runner.run(['systemctl', 'enable', '--now', 'crio'])

    def verify_runtime_service(self) -> bool:
        if not self.inspector.service_active('crio'):
            return False
        version = self.inspector.runtime_version()
        if not version or '.'.join(version.split('.')[:2]) != self.config.crio_minor:
            raise StateVerificationError(
                f"CRI-O reports version {version or 'unknown'}, expected {self.config.crio_minor}"
            )
        logger.info(f"CRI-O is active and running version {version}.")
        return True

    # Kubernetes tools

    def install_kubernetes_tools(self) -> None:
        repo = kubernetes_repository(self.config.kubernetes_version)
        self.platform.register_repository(repo)
        self.platform.refresh_metadata()
        missing = [p for p in KUBERNETES_TOOLS if not self.platform.is_installed(p)]
        if missing:
            self.platform.install_packages(missing, repository=repo.name)
        else:
            logger.info("Kubernetes tools already installed")
        self.platform.hold_packages(KUBERNETES_TOOLS)
        # kubeadm starts the kubelet itself during init/join
        if self.inspector.service_active('kubelet') or self.inspector.service_enabled('kubelet'):
            logger.info("Stopping kubelet until the node joins a cluster")
            self.runner.run(['systemctl', 'disable', '--now', 'kubelet'])

    def verify_kubernetes_tools(self) -> bool:
        missing = [p for p in KUBERNETES_TOOLS if not self.platform.is_installed(p)]
        if missing:
            logger.error(f"Missing packages: {', '.join(missing)}")
            return False
        if self.inspector.service_active('kubelet'):
            raise StateVerificationError("kubelet is running before the node joined a cluster")
        return True

    # CNI plugins

    @property
    def cni_dir(self) -> Path:
        return self.inspector.path(self.config.cni_bin_dir)

    def _cni_staged(self) -> bool:
        stamp = self.cni_dir / CNI_VERSION_STAMP
        return file_matches(stamp, f"{self.config.cni_plugins_version}\n") and self.verify_cni_plugins()

    def install_cni_plugins(self) -> None:
        if self._cni_staged():
            logger.info(f"CNI plugins {self.config.cni_plugins_version} already installed")
            return
        url = self.config.cni_archive_url
        logger.info(f"Downloading {url}")
        if self.runner.dry_run:
            logger.info(f"[DRY RUN] Would unpack CNI plugins into {self.cni_dir}")
            return
        try:
            response = requests.get(url, timeout=self.config.http_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to download CNI plugins: {e}") from e

        self.cni_dir.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(fileobj=io.BytesIO(response.content), mode='r:gz') as archive:
                archive.extractall(self.cni_dir, filter='data')
        except tarfile.TarError as e:
            raise InstallationError(f"Failed to unpack CNI plugins archive: {e}") from e
        (self.cni_dir / CNI_VERSION_STAMP).write_text(f"{self.config.cni_plugins_version}\n")

    def verify_cni_plugins(self) -> bool:
        return all((self.cni_dir / name).is_file() for name in CNI_CORE_PLUGINS)

    # Final verification

    def verify_node(self) -> bool:
        info = self.inspector.runtime_info()
        if info is None:
            raise StateVerificationError("CRI-O runtime check failed: crictl info did not respond")
        conditions = {
            c.get('type'): c.get('status')
            for c in info.get('status', {}).get('conditions', [])
        }
        if conditions.get('RuntimeReady') is False:
            raise StateVerificationError("CRI-O reports RuntimeReady=false")
        logger.info("CRI-O runtime is ready.")

        if not (self.verify_swap() and self.verify_sysctl()):
            return False
        logger.info("System configuration verified (swap disabled, sysctl parameters set).")
        return True

    def log_guidance(self) -> None:
        """Tell the operator what remains to be done after preparation."""
        for line in (
            "WARNING: A Container Network Interface (CNI) plugin (e.g., Calico, Flannel, Cilium) has not been installed yet.",
            "This will result in 'NetworkReady=false' in 'crictl info' output until a CNI plugin is configured.",
            "Without a CNI plugin, CoreDNS pods will remain in 'Pending' or 'CrashLoopBackOff' state "
            "because they cannot communicate over the pod network.",
            "Deploy a CNI plugin after 'kubeadm init' (control plane) or once the node has joined with 'kubeadm join'.",
            "For example: kubectl apply -f https://docs.projectcalico.org/manifests/calico.yaml",
            "SUGGESTION: Do not start the kubelet service manually before running 'kubeadm init' or 'kubeadm join'.",
            "'kubeadm init' (control plane) and 'kubeadm join' (worker) configure and start the kubelet.",
        ):
            logger.warning(line)
