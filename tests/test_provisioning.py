from unittest.mock import Mock

import pytest
from click.testing import CliRunner

from conftest import IP, FakeClient, make_do_target, make_route53_client, make_target
from dokkuhost.cli import get_cli
from dokkuhost.handoff import HostVars, ProvisioningTable
from dokkuhost.lazy import NotAvailable, evaluate
from dokkuhost.operations import apply
from dokkuhost.providers import (
    DigitalOceanApi,
    DigitalOceanServer,
    ExistingHost,
    Route53Api,
    Route53Records,
    get_dns_registrar,
    get_server_provisioner,
)
from dokkuhost.provisioning import Provisioning


@pytest.fixture
def do_api():
    api = DigitalOceanApi(token="do-token", client=FakeClient(), poll_interval=0)
    api.wait_for_ssh = Mock()
    return api


def test_strategy_selection():
    assert get_server_provisioner(None) is ExistingHost
    assert get_server_provisioner("digital_ocean") is DigitalOceanServer
    assert get_dns_registrar(None) is None
    assert get_dns_registrar("route53") is Route53Records

    with pytest.raises(ValueError):
        get_server_provisioner("linode")


def test_existing_host(tmp_path, stack):
    known_hosts = tmp_path / "known_hosts"
    known_hosts.write_text("app.example.com ssh-ed25519 AAAA\n")
    table = ProvisioningTable()
    stack.provisioning = Provisioning(
        targets=[make_target()], table=table, known_hosts=known_hosts
    )

    apply(stack, deploy=True)

    target = stack.provisioning.for_target("app.example.com")
    assert isinstance(target.server, ExistingHost)
    assert "dns" not in target._children
    assert list(table) == ["app.example.com"]
    assert table.lookup("app.example.com") is None
    assert evaluate(target.resolved_address) == "app.example.com"
    assert known_hosts.read_text() == "app.example.com ssh-ed25519 AAAA\n"


def test_no_dns_without_server_provider(stack):
    dns_client = make_route53_client()
    stack.provisioning = Provisioning(
        targets=[make_target(dns_provider="route53")],
        table=ProvisioningTable(),
        apis=dict(route53=Route53Api(client=dns_client)),
    )

    apply(stack, deploy=True)

    assert "dns" not in stack.provisioning.app_example_com._children
    assert not dns_client.method_calls


def test_digital_ocean_with_route53(do_api, public_keys, tmp_path, stack):
    dns_client = make_route53_client()
    table = ProvisioningTable()
    stack.provisioning = Provisioning(
        targets=[make_do_target(dns_provider="route53")],
        table=table,
        public_keys=public_keys,
        known_hosts=tmp_path / "known_hosts",
        apis=dict(digital_ocean=do_api, route53=Route53Api(client=dns_client)),
    )

    results = apply(stack, deploy=True)

    target = stack.provisioning.app_example_com
    order = list(results)
    assert (
        order.index(target.server.droplet)
        < order.index(target.register)
        < order.index(target.dns)
    )
    assert list(table) == [IP]
    assert table.lookup(IP) == HostVars(
        address=IP,
        source_repo="https://github.com/dokku/dokku.git",
        version_pin="v1.0",
    )
    values = [
        call.kwargs["ChangeBatch"]["Changes"][0]["ResourceRecordSet"]
        for call in dns_client.change_resource_record_sets.call_args_list
    ]
    assert [(v["Name"], v["ResourceRecords"]) for v in values] == [
        ("app.example.com.", [dict(Value=IP)]),
        ("\\052.app.example.com.", [dict(Value=IP)]),
    ]


def test_dry_run_of_new_droplet(do_api, public_keys, tmp_path, stack):
    table = ProvisioningTable()
    stack.provisioning = Provisioning(
        targets=[make_do_target()],
        table=table,
        public_keys=public_keys,
        known_hosts=tmp_path / "known_hosts",
        apis=dict(digital_ocean=do_api),
    )

    results = apply(stack, deploy=True, dry_run=True)

    target = stack.provisioning.app_example_com
    assert results[target.register].changed
    assert not results[target.register].failed
    assert list(table) == []

    with pytest.raises(NotAvailable):
        evaluate(target.resolved_address)


def test_address_command(do_api, public_keys, tmp_path, stack):
    stack.provisioning = Provisioning(
        targets=[make_do_target()],
        table=ProvisioningTable(),
        public_keys=public_keys,
        known_hosts=tmp_path / "known_hosts",
        apis=dict(digital_ocean=do_api),
    )
    do_api.create_or_get_server(
        "app.example.com", [], "ams3", "ubuntu-22-04-x64", "s-1vcpu-1gb"
    )

    target = stack.provisioning.for_target("app.example.com")
    result = CliRunner().invoke(get_cli(target), ["address"], catch_exceptions=False)

    assert result.output == f"{IP}\n"
