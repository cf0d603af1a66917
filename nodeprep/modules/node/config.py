"""Node preparation configuration management.

This module handles configuration loading from multiple sources with the following precedence:
1. Explicitly passed parameters
2. Environment variables
3. Configuration files
4. Default values
"""
import os
import logging
import re
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

logger = logging.getLogger("nodeprep.node.config")

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/nodeprep/config.yaml"),
    Path("~/.config/nodeprep/config.yaml").expanduser(),
    Path("nodeprep.yaml").absolute(),
]

ENV_PREFIX = "NODEPREP_"

VERSION_PATTERN = re.compile(r"^v\d+\.\d+(\.\d+)?$")

PLATFORMS = ("auto", "rocky", "debian")


class PrepConfig(BaseModel):
    """Settings for a node preparation run."""
    model_config = ConfigDict(extra="ignore")

    crio_version: str = Field(
        default="v1.33",
        description="CRI-O stable stream to install (vMAJOR.MINOR)"
    )
    kubernetes_version: str = Field(
        default="v1.33",
        description="Kubernetes package stream to install (vMAJOR.MINOR)"
    )
    cni_plugins_version: str = Field(
        default="v1.3.0",
        description="Pinned containernetworking/plugins release"
    )
    arch: str = Field(
        default="amd64",
        description="Architecture of the CNI plugins archive"
    )
    platform: str = Field(
        default="auto",
        description="Platform variant (auto, rocky, debian)"
    )
    log_file: str = Field(
        default="/var/log/k8s-node-setup.log",
        description="Path of the persistent run log"
    )
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for HTTP probes and downloads"
    )
    host_root: str = Field(
        default="/",
        description="Root under which host files are read and written"
    )
    cni_bin_dir: str = Field(
        default="/opt/cni/bin",
        description="Directory receiving the CNI plugin binaries"
    )
    kernel_modules: List[str] = Field(
        default_factory=lambda: ["overlay", "br_netfilter"]
    )
    sysctl: Dict[str, str] = Field(
        default_factory=lambda: {
            "net.bridge.bridge-nf-call-iptables": "1",
            "net.ipv4.ip_forward": "1",
            "net.bridge.bridge-nf-call-ip6tables": "1",
        }
    )
    registries: List[str] = Field(
        default_factory=lambda: ["docker.io", "quay.io"]
    )
    probe_hosts: List[str] = Field(
        default_factory=lambda: ["google.com", "download.opensuse.org", "pkgs.k8s.io"]
    )

    @field_validator("crio_version", "kubernetes_version", "cni_plugins_version")
    @classmethod
    def check_version(cls, v: str) -> str:
        """Require a leading 'v' followed by MAJOR.MINOR."""
        v = v.strip()
        if not v.startswith("v"):
            v = f"v{v}"
        if not VERSION_PATTERN.match(v):
            raise ValueError(f"invalid version '{v}', expected vMAJOR.MINOR[.PATCH]")
        return v

    @field_validator("platform")
    @classmethod
    def check_platform(cls, v: str) -> str:
        v = v.lower()
        if v not in PLATFORMS:
            raise ValueError(f"unknown platform '{v}', expected one of {', '.join(PLATFORMS)}")
        return v

    @field_validator("kernel_modules")
    @classmethod
    def check_modules(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one kernel module is required")
        return v

    @property
    def crio_minor(self) -> str:
        """The MAJOR.MINOR part of the CRI-O version, e.g. '1.33'."""
        return ".".join(self.crio_version.lstrip("v").split(".")[:2])

    @property
    def cni_archive_url(self) -> str:
        version = self.cni_plugins_version
        return (
            "https://github.com/containernetworking/plugins/releases/download/"
            f"{version}/cni-plugins-linux-{self.arch}-{version}.tgz"
        )

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> 'PrepConfig':
        """Load configuration from file, environment variables and overrides.

        Args:
            config_path: Explicit configuration file; must exist when given
            overrides: Values passed on the command line (None values are ignored)

        Returns:
            PrepConfig: The merged configuration

        Raises:
            ConfigurationError: If the file is missing or a value is invalid
        """
        config_data: Dict[str, Any] = {}

        if config_path:
            path = Path(config_path).expanduser().absolute()
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")
            config_data = cls._load_config_file(path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        config_data.update(cls._load_env())
        config_data.update({k: v for k, v in (overrides or {}).items() if v is not None})

        try:
            return cls(**config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        logger.debug(f"Loaded configuration from {path}")
        return data

    @classmethod
    def _load_env(cls) -> Dict[str, Any]:
        """Collect scalar settings from NODEPREP_* environment variables."""
        values: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            if field.annotation not in (str, float):
                continue
            value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if value:
                values[name] = value
        return values

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)
