from nodeprep.modules.node import HostState


def test_swap_facts(rocky_host, inspector_for):
    inspector = inspector_for(rocky_host)
    assert inspector.swap_totals() == {'total': 2097148, 'used': 0}
    assert inspector.swap_devices() == ['/dev/dm-1']
    assert inspector.fstab_swap_entries() == ['/dev/mapper/rl-swap none swap defaults 0 0']


def test_selinux_modes(rocky_host, inspector_for):
    inspector = inspector_for(rocky_host)
    assert inspector.selinux_runtime() == 'enforcing'
    assert inspector.selinux_persisted() == 'enforcing'

    rocky_host.write('/sys/fs/selinux/enforce', '0')
    assert inspector.selinux_runtime() == 'permissive'


def test_selinux_absent(ubuntu_host, inspector_for):
    inspector = inspector_for(ubuntu_host)
    assert inspector.selinux_runtime() == 'disabled'
    assert inspector.selinux_persisted() is None


def test_module_and_sysctl(rocky_host, inspector_for):
    inspector = inspector_for(rocky_host)
    assert not inspector.module_loaded('overlay')
    rocky_host.path('/sys/module/overlay').mkdir(parents=True)
    assert inspector.module_loaded('overlay')

    assert inspector.sysctl_value('net.ipv4.ip_forward') == '0'
    assert inspector.sysctl_value('net.ipv6.conf.all.forwarding') is None


def test_runtime_version_from_json(rocky_host, inspector_for):
    rocky_host.binaries.add('crio')
    assert inspector_for(rocky_host).runtime_version() == '1.33.2'


def test_runtime_version_falls_back_to_text(rocky_host, inspector_for, monkeypatch):
    rocky_host.binaries.add('crio')
    monkeypatch.setattr(rocky_host, '_crio', lambda args: (
        (0, 'not json') if '--json' in args else (0, 'crio version 1.31.4\n')
    ))
    assert inspector_for(rocky_host).runtime_version() == '1.31.4'


def test_runtime_version_without_crio(rocky_host, inspector_for):
    assert inspector_for(rocky_host).runtime_version() is None
    assert not rocky_host.commands('crio')


def test_runtime_info_unreachable(rocky_host, inspector_for):
    assert inspector_for(rocky_host).runtime_info() is None


def test_snapshot(rocky_host, inspector_for):
    state = inspector_for(rocky_host).snapshot(['overlay'], ['net.ipv4.ip_forward'])

    assert isinstance(state, HostState)
    assert not state.swap_disabled
    assert state.firewall_active
    assert state.modules_loaded == {'overlay': False}
    assert not state.sysctl_enabled(['net.ipv4.ip_forward'])
    assert state.runtime_version is None
    assert not state.kubelet_active
