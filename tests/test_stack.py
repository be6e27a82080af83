from textwrap import dedent
from unittest.mock import Mock

import pytest
from click.testing import CliRunner

from conftest import IP, FailingClient, FakeClient, make_route53_client
from dokkuhost.cli import get_main_cli
from dokkuhost.dokku import DokkuNode
from dokkuhost.handoff import HostVars
from dokkuhost.inventory import load_inventory
from dokkuhost.lazy import evaluate
from dokkuhost.operations import aborted_targets, apply
from dokkuhost.providers import DigitalOceanApi, Route53Api
from dokkuhost.stack import SiteStack

ENVIRON = dict(
    DIGITALOCEAN_TOKEN="do-token",
    AWS_ACCESS_KEY_ID="AKIA",
    AWS_SECRET_ACCESS_KEY="secret",
)


@pytest.fixture
def apis():
    do_api = DigitalOceanApi(token="do-token", client=FakeClient(), poll_interval=0)
    do_api.wait_for_ssh = Mock()
    return dict(
        digital_ocean=do_api,
        route53=Route53Api(client=make_route53_client()),
    )


@pytest.fixture
def site(inventory_file, public_keys, apis):
    inventory = load_inventory(inventory_file, ENVIRON)
    return SiteStack(inventory=inventory, apis=apis)


def test_layout(site):
    assert list(site._children) == ["provisioning", "configuration"]
    assert list(site.provisioning._children) == [
        "app_example_com",
        "static_example_com",
    ]
    assert list(site.configuration._children) == [
        "app_example_com",
        "static_example_com",
    ]
    assert isinstance(site.configuration.app_example_com, DokkuNode)
    assert "dns" in site.provisioning.app_example_com._children
    assert "dns" not in site.provisioning.static_example_com._children


def test_provisioning_feeds_configuration(site):
    apply(site.provisioning, deploy=True)

    app = site.configuration.app_example_com
    static = site.configuration.static_example_com
    assert list(site.table) == [IP, "static.example.com"]
    assert evaluate(app.host.hostname) == IP
    assert evaluate(app.host_vars) == HostVars(
        address=IP,
        source_repo="https://github.com/dokku/dokku.git",
        version_pin="v1.0",
    )
    assert evaluate(static.host.hostname) == "static.example.com"
    assert evaluate(static.host_vars).version_pin == "v1.0"


def test_public_keys_reach_both_phases(site):
    droplet_keys = site.provisioning.app_example_com.server.keys
    assert list(droplet_keys._children) == ["alice"]
    assert list(site.configuration.app_example_com.root_keys._children) == ["alice"]


def test_cli_ls(site):
    cli = get_main_cli(lambda path: site)
    result = CliRunner().invoke(
        cli, ["configuration", "ls"], obj={}, catch_exceptions=False
    )
    assert result.output == (
        "app_example_com: <DokkuNode configuration.app_example_com>\n"
        "static_example_com: <DokkuNode configuration.static_example_com>\n"
    )


def test_configuration_uses_inventory_known_hosts(site, inventory_file):
    host = site.configuration.app_example_com.host
    known_hosts = inventory_file.parent / "known_hosts"
    assert host.props.known_hosts_file == known_hosts
    assert f"UserKnownHostsFile={known_hosts}" in host.ssh_options


@pytest.fixture
def two_targets(tmp_path, public_keys):
    path = tmp_path / "two.yml"
    path.write_text(
        dedent(
            """\
            defaults:
              dokku_git_repo: https://github.com/dokku/dokku.git
              dokku_version: v1.0
            hosts:
              bad.example.com:
                server_provider: digital_ocean
                do_region: ams3
                do_image: ubuntu-22-04-x64
                do_size: s-1vcpu-1gb
              good.example.com:
                fqdn: good.example.com
            """
        )
    )
    api = DigitalOceanApi(token="do-token", client=FailingClient(), poll_interval=0)
    return SiteStack(
        inventory=load_inventory(path, ENVIRON),
        apis=dict(digital_ocean=api),
    )


def test_failed_target_does_not_stop_the_others(two_targets, recording_ansible):
    site = two_targets

    results = apply(site, deploy=True)

    assert aborted_targets(results) == [
        site.provisioning.bad_example_com,
        site.configuration.bad_example_com,
    ]
    assert list(site.table) == ["good.example.com"]
    assert "provisioning stopped" in site.table.failure_of("bad.example.com")
    assert {hostname for hostname, _, _ in recording_ansible.calls} == {
        "good.example.com"
    }
    assert recording_ansible.modules.count("ansible.builtin.service") == 1


def test_failed_target_exit_code(two_targets, recording_ansible):
    cli = get_main_cli(lambda path: two_targets)

    result = CliRunner().invoke(cli, ["-", "deploy"], obj={})

    assert result.exit_code == 1
    assert "Aborted: provisioning.bad_example_com" in result.output
    assert "Aborted: configuration.bad_example_com" in result.output
