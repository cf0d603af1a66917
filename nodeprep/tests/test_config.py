import pytest
import yaml

from nodeprep.modules.node import ConfigurationError, PrepConfig
from nodeprep.modules.node import config as config_module


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Ignore config files and NODEPREP_* variables from the machine running the tests."""
    monkeypatch.setattr(config_module, 'DEFAULT_CONFIG_PATHS', [tmp_path / 'absent.yaml'])
    for name in PrepConfig.model_fields:
        monkeypatch.delenv(f'NODEPREP_{name.upper()}', raising=False)


def write_config(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


def test_defaults():
    config = PrepConfig.load()
    assert config.crio_version == 'v1.33'
    assert config.kubernetes_version == 'v1.33'
    assert config.cni_plugins_version == 'v1.3.0'
    assert config.kernel_modules == ['overlay', 'br_netfilter']
    assert config.sysctl['net.ipv4.ip_forward'] == '1'
    assert config.log_file == '/var/log/k8s-node-setup.log'
    assert config.crio_minor == '1.33'


def test_version_gets_leading_v():
    config = PrepConfig(crio_version='1.30', kubernetes_version=' v1.30 ')
    assert config.crio_version == 'v1.30'
    assert config.kubernetes_version == 'v1.30'


def test_cni_archive_url():
    config = PrepConfig(cni_plugins_version='v1.4.1', arch='arm64')
    assert config.cni_archive_url == (
        'https://github.com/containernetworking/plugins/releases/download/'
        'v1.4.1/cni-plugins-linux-arm64-v1.4.1.tgz'
    )


@pytest.mark.parametrize('overrides', [
    {'crio_version': 'latest'},
    {'platform': 'arch'},
    {'kernel_modules': []},
])
def test_invalid_values_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError) as exc_info:
        PrepConfig.load(overrides=overrides)
    assert exc_info.value.exit_code == 2


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigurationError, match='not found'):
        PrepConfig.load(tmp_path / 'nope.yaml')


def test_non_mapping_file(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text('- just\n- a list\n')
    with pytest.raises(ConfigurationError, match='mapping'):
        PrepConfig.load(path)


def test_precedence(monkeypatch, tmp_path):
    path = write_config(tmp_path / 'config.yaml', {
        'crio_version': 'v1.30',
        'kubernetes_version': 'v1.30',
        'arch': 'arm64',
        'registries': ['registry.example.com'],
    })
    monkeypatch.setenv('NODEPREP_KUBERNETES_VERSION', 'v1.31')
    monkeypatch.setenv('NODEPREP_ARCH', 'amd64')

    config = PrepConfig.load(path, {'arch': 'arm64', 'crio_version': None})

    assert config.crio_version == 'v1.30'
    assert config.kubernetes_version == 'v1.31'
    assert config.arch == 'arm64'
    assert config.registries == ['registry.example.com']


def test_default_path_is_searched(monkeypatch, tmp_path):
    path = write_config(tmp_path / 'nodeprep.yaml', {'cni_plugins_version': '1.5.0'})
    monkeypatch.setattr(config_module, 'DEFAULT_CONFIG_PATHS', [tmp_path / 'absent.yaml', path])
    assert PrepConfig.load().cni_plugins_version == 'v1.5.0'


def test_save_then_load(tmp_path):
    path = tmp_path / 'out' / 'config.yaml'
    PrepConfig(platform='debian', http_timeout=5).save(path)

    config = PrepConfig.load(path)

    assert config.platform == 'debian'
    assert config.http_timeout == 5.0
