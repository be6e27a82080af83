from textwrap import dedent
from unittest.mock import Mock

import pytest

import dokkuhost.ansible
from dokkuhost.components import Stack
from dokkuhost.inventory import PublicKey, TargetConfig
from dokkuhost.providers.digitalocean import key_fingerprint
from dokkuhost.results import OperationError, Result

KEY_BLOB = "AAAAC3NzaC1lZDI1NTE5AAAAIGlG2Wq9Hn6vhb6lH0pQmnJcXrvvIq1lcnuP5h4wq7zD"
IP = "203.0.113.5"
ZONE_ID = "/hostedzone/Z123"


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", help="Run slow tests")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords:
            if not config.getoption("--runslow"):
                item.add_marker(pytest.mark.skip(reason="need --runslow option to run"))


@pytest.fixture
def TestingStack():
    class TestingStack(Stack):
        pass

    return TestingStack


@pytest.fixture
def stack(TestingStack):
    return TestingStack()


def make_target(name="app.example.com", **kwargs):
    kwargs.setdefault("dokku_git_repo", "https://github.com/dokku/dokku.git")
    kwargs.setdefault("dokku_version", "v1.0")
    return TargetConfig(name=name, **kwargs)


def make_do_target(name="app.example.com", **kwargs):
    return make_target(
        name,
        server_provider="digital_ocean",
        do_api_token="do-token",
        do_region="ams3",
        do_image="ubuntu-22-04-x64",
        do_size="s-1vcpu-1gb",
        **kwargs,
    )


@pytest.fixture
def public_keys(tmp_path):
    keys_dir = tmp_path / "authorized_keys"
    keys_dir.mkdir()
    alice = keys_dir / "alice"
    alice.write_text(f"ssh-ed25519 {KEY_BLOB} alice@laptop\n")
    return [
        PublicKey(
            name="alice",
            path=alice,
            content=f"ssh-ed25519 {KEY_BLOB} alice@laptop",
        ),
    ]


@pytest.fixture
def inventory_file(tmp_path):
    path = tmp_path / "inventory.yml"
    path.write_text(
        dedent(
            """\
            defaults:
              dokku_git_repo: https://github.com/dokku/dokku.git
              dokku_version: v1.0
            known_hosts: known_hosts
            hosts:
              app.example.com:
                server_provider: digital_ocean
                do_region: ams3
                do_image: ubuntu-22-04-x64
                do_size: s-1vcpu-1gb
                dns_provider: route53
              static.example.com:
                fqdn: static.example.com
            """
        )
    )
    return path


class FakeClient:
    """
    In-memory stand-in for the DigitalOcean API, behind the same interface
    as :class:`~dokkuhost.http.HttpClient`. New droplets become active, with
    :data:`IP` as their address, the first time they are polled.
    """

    def __init__(self, page_size=200):
        self.keys = []
        self.droplets = []
        self.posts = []
        self.page_size = page_size

    def get(self, url, params=None):
        params = params or {}

        if url == "/account/keys":
            page = params["page"]
            start = (page - 1) * self.page_size
            keys = self.keys[start : start + self.page_size]
            more = start + self.page_size < len(self.keys)
            links = dict(pages=dict(next="next")) if more else {}
            return Mock(json=dict(ssh_keys=keys, links=links))

        if url == "/droplets":
            matching = [d for d in self.droplets if d["name"] == params["name"]]
            return Mock(json=dict(droplets=matching))

        droplet_id = int(url.rsplit("/", 1)[1])
        [droplet] = [d for d in self.droplets if d["id"] == droplet_id]
        droplet["status"] = "active"
        droplet["networks"] = dict(v4=[dict(type="public", ip_address=IP)])
        return Mock(json=dict(droplet=droplet))

    def post(self, url, json):
        self.posts.append((url, json))

        if url == "/account/keys":
            key = dict(
                id=100 + len(self.keys),
                name=json["name"],
                fingerprint=key_fingerprint(json["public_key"]),
            )
            self.keys.append(key)
            return Mock(json=dict(ssh_key=key))

        droplet = dict(
            id=500 + len(self.droplets),
            name=json["name"],
            status="new",
            networks=dict(v4=[]),
        )
        self.droplets.append(droplet)
        return Mock(json=dict(droplet=dict(droplet)))


class FailingClient(FakeClient):
    """
    Like :class:`FakeClient`, but the API rejects every change.
    """

    def post(self, url, json):
        raise OperationError(
            "API call failed",
            result=Result(failed=True, output=f"API error 401 POST {url}"),
        )

def make_route53_client(records=()):
    client = Mock()
    client.list_hosted_zones_by_name.return_value = dict(
        HostedZones=[dict(Name="app.example.com.", Id=ZONE_ID)]
    )
    client.list_resource_record_sets.return_value = dict(
        ResourceRecordSets=list(records)
    )
    return client


class RecordingAnsible:
    """
    Stands in for :func:`dokkuhost.ansible.run_ansible`. Every module call is
    recorded and reported as changed, except commands whose ``creates``
    path an earlier call already created.
    """

    def __init__(self):
        self.calls = []
        self.created = set()

    def __call__(self, hostname, ansible_variables, action, check=False):
        args = action["args"]
        self.calls.append((hostname, action["module"], args))

        creates = args.get("creates")
        if creates in self.created:
            return Result()

        if creates and not check:
            self.created.add(creates)

        return Result(changed=True)

    @property
    def modules(self):
        return [module for _, module, _ in self.calls]

    def args_of(self, module):
        return [args for _, name, args in self.calls if name == module]


@pytest.fixture
def recording_ansible(monkeypatch):
    recorder = RecordingAnsible()
    monkeypatch.setattr(dokkuhost.ansible, "run_ansible", recorder)
    return recorder
