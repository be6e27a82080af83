import base64
import binascii
import hashlib
import logging
import socket
import time
from dataclasses import dataclass
from functools import cached_property
from typing import Optional

import click

from ..callbacks import Callbacks
from ..components import Component, slug
from ..http import HttpClient
from ..inventory import PublicKey
from ..knownhosts import KnownHostsCleanup
from ..lazy import Lazy, NotAvailable, evaluate, lazy_property
from ..props import Prop
from ..results import OperationError, Result
from .base import ServerProvisioner

logger = logging.getLogger(__name__)

API_ENDPOINT = "https://api.digitalocean.com/v2"


def key_fingerprint(public_key):
    """
    MD5 fingerprint of an OpenSSH public key, in the colon-separated form
    DigitalOcean uses to identify keys.
    """

    try:
        blob = base64.b64decode(public_key.split()[1], validate=True)

    except (IndexError, binascii.Error):
        raise ValueError(f"Not an OpenSSH public key: {public_key[:40]!r}")

    digest = hashlib.md5(blob).hexdigest()
    return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))


def public_ipv4(droplet):
    for network in droplet.get("networks", {}).get("v4", []):
        if network.get("type") == "public":
            return network["ip_address"]


@dataclass
class ServerInfo:
    droplet_id: int
    ip_address: str
    changed: bool


class DigitalOceanApi:
    """
    The few DigitalOcean API calls needed to get a droplet with our keys on
    it. Droplet names are treated as unique.

    :param token: API token.
    :param client: :class:`~dokkuhost.http.HttpClient` to use instead of one
                   talking to the public API.
    """

    def __init__(self, token, client=None, poll_interval=5, timeout=300):
        self.client = client or HttpClient(
            API_ENDPOINT,
            headers={"Authorization": f"Bearer {token}"},
        )
        self.poll_interval = poll_interval
        self.timeout = timeout

    def _paginate(self, url, key, **params):
        page = 1
        while True:
            data = self.client.get(
                url, params=dict(params, page=page, per_page=200)
            ).json
            yield from data[key]
            if not data.get("links", {}).get("pages", {}).get("next"):
                return
            page += 1

    def find_key(self, public_key) -> Optional[dict]:
        fingerprint = key_fingerprint(public_key)
        for key in self._paginate("/account/keys", "ssh_keys"):
            if key["fingerprint"] == fingerprint:
                return key

    def upload_key(self, name, public_key) -> int:
        """
        Make sure ``public_key`` is on the account and return its id. A key
        that is already there, under any name, is reused.
        """

        existing = self.find_key(public_key)
        if existing:
            logger.debug("Key %s already uploaded as %r", name, existing["name"])
            return existing["id"]

        return self.create_key(name, public_key)

    def create_key(self, name, public_key) -> int:
        data = self.client.post(
            "/account/keys",
            json=dict(name=name, public_key=public_key),
        ).json
        logger.info("Uploaded key %s", name)
        return data["ssh_key"]["id"]

    def find_droplet(self, name) -> Optional[dict]:
        droplets = self.client.get("/droplets", params=dict(name=name)).json
        matching = [d for d in droplets["droplets"] if d["name"] == name]
        if len(matching) > 1:
            raise OperationError(
                f"Found {len(matching)} droplets named {name!r}",
                result=Result(failed=True, output="Droplet names must be unique"),
            )

        return matching[0] if matching else None

    def wait_until_active(self, droplet):
        deadline = time.monotonic() + self.timeout
        while not (droplet["status"] == "active" and public_ipv4(droplet)):
            if time.monotonic() > deadline:
                raise OperationError(
                    f"Droplet {droplet['name']!r} is not active",
                    result=Result(
                        failed=True,
                        output=f"Timed out after {self.timeout}s, "
                        f"status is {droplet['status']!r}",
                    ),
                )

            time.sleep(self.poll_interval)
            droplet = self.client.get(f"/droplets/{droplet['id']}").json["droplet"]

        return droplet

    def create_or_get_server(self, name, key_ids, region, image, size) -> ServerInfo:
        """
        Return the droplet called ``name``, creating it if there is none.
        ``changed`` is ``True`` only if the droplet was created by this call.
        A new droplet is waited on until it's active and has a public IPv4
        address.
        """

        droplet = self.find_droplet(name)
        changed = droplet is None

        if changed:
            droplet = self.client.post(
                "/droplets",
                json=dict(
                    name=name,
                    region=region,
                    image=image,
                    size=size,
                    ssh_keys=list(key_ids),
                ),
            ).json["droplet"]
            logger.info("Created droplet %s (id %s)", name, droplet["id"])

        droplet = self.wait_until_active(droplet)
        return ServerInfo(
            droplet_id=droplet["id"],
            ip_address=public_ipv4(droplet),
            changed=changed,
        )

    def wait_for_ssh(self, address, port=22):
        """
        Wait until a new droplet accepts connections on its SSH port.
        """

        wait_for_port(address, port, timeout=self.timeout)


def wait_for_port(address, port=22, timeout=120, poll_interval=2):
    deadline = time.monotonic() + timeout
    while True:
        try:
            socket.create_connection((address, port), timeout=poll_interval).close()
            return

        except OSError:
            if time.monotonic() > deadline:
                raise OperationError(
                    f"{address}:{port} is not reachable",
                    result=Result(
                        failed=True,
                        output=f"No connection to {address}:{port} after {timeout}s",
                    ),
                )

        time.sleep(poll_interval)


class DigitalOceanKey(Component):
    """
    A public key uploaded to the DigitalOcean account.
    """

    class Props:
        api = Prop(DigitalOceanApi)
        key = Prop(PublicKey)

    @property
    def name(self):
        return self.props.key.name

    def deploy(self, dry_run=False):
        api = self.props.api
        content = self.props.key.content

        existing = api.find_key(content)
        if dry_run or existing:
            if existing:
                self.key_id = existing["id"]
            return Result(changed=existing is None)

        self.key_id = api.create_key(self.name, content)
        return Result(changed=True)

    @lazy_property
    def id(self):
        try:
            return self.key_id

        except AttributeError:
            raise NotAvailable(f"Key {self.name!r} has not been uploaded")


class DigitalOceanDroplet(Component):
    """
    A droplet named after the target. If one with that name exists, it's
    reused; otherwise it's created with all the uploaded keys.
    ``on_change`` callbacks fire only when a droplet is created.
    """

    class Props:
        api = Prop(DigitalOceanApi)
        name = Prop(str)
        region = Prop(str)
        image = Prop(str)
        size = Prop(str)
        key_ids = Prop(list)

    on_change = Callbacks()

    def deploy(self, dry_run=False):
        api = self.props.api

        if dry_run:
            droplet = api.find_droplet(self.props.name)
            if droplet:
                self.server = ServerInfo(droplet["id"], public_ipv4(droplet), False)
            return Result(changed=droplet is None)

        self.server = api.create_or_get_server(
            name=self.props.name,
            key_ids=evaluate(self.props.key_ids),
            region=self.props.region,
            image=self.props.image,
            size=self.props.size,
        )

        if self.server.changed:
            api.wait_for_ssh(self.server.ip_address)
            self.on_change.invoke()

        return Result(
            changed=self.server.changed,
            output=f"{self.props.name}: {self.server.ip_address}",
        )

    @lazy_property
    def ip_address(self):
        server = getattr(self, "server", None)
        if server is None or not server.ip_address:
            raise NotAvailable(f"Droplet {self.props.name!r} does not exist yet")

        return server.ip_address

    def add_commands(self, cli):
        @cli.command
        def ip():
            """Print the droplet's public IPv4 address"""
            droplet = self.props.api.find_droplet(self.props.name)
            if droplet is None:
                raise click.ClickException(f"No droplet named {self.props.name!r}")
            click.echo(public_ipv4(droplet))


class DigitalOceanServer(ServerProvisioner):
    """
    Provisions the target as a DigitalOcean droplet: uploads the public
    keys, gets or creates the droplet, and forgets old host keys for its
    address if the droplet is new.
    """

    class Props:
        api = Prop(Optional[DigitalOceanApi])

    provisioned = True

    @classmethod
    def for_target(cls, target, public_keys, known_hosts, api=None):
        return cls(
            target=target,
            public_keys=public_keys,
            known_hosts=known_hosts,
            api=api,
        )

    @cached_property
    def api(self):
        return self.props.api or DigitalOceanApi(token=self.props.target.do_api_token)

    def build(self):
        target = self.props.target

        self.keys = Component()
        for key in self.props.public_keys:
            setattr(self.keys, slug(key.name), DigitalOceanKey(api=self.api, key=key))

        self.droplet = DigitalOceanDroplet(
            api=self.api,
            name=target.name,
            region=target.do_region,
            image=target.do_image,
            size=target.do_size,
            key_ids=[key.id for key in self.keys],
        )

        self.known_hosts = KnownHostsCleanup(
            path=self.props.known_hosts,
            names=[self.droplet.ip_address, target.name],
        )
        self.known_hosts.trigger_after(self.droplet)

    @property
    def address(self) -> Lazy:
        return self.droplet.ip_address

    def lookup_address(self):
        droplet = self.api.find_droplet(self.props.target.name)
        return public_ipv4(droplet) if droplet else None
