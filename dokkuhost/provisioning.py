import logging
from pathlib import Path
from typing import Any

import click

from .components import Component, slug
from .handoff import HostVars, ProvisioningTable
from .inventory import TargetConfig
from .lazy import NotAvailable, evaluate, lazy_property
from .props import Prop
from .providers import get_dns_registrar, get_server_provisioner
from .results import Result

logger = logging.getLogger(__name__)


class GroupRegistration(Component):
    """
    Adds the target's resolved address to the group of hosts to configure.
    For provider-backed targets, it also publishes the target's variables,
    keyed by that address.
    """

    class Props:
        table = Prop(ProvisioningTable)
        target = Prop(TargetConfig)
        address = Prop(str, lazy=True)
        publish = Prop(bool, default=False)

    def deploy(self, dry_run=False):
        target = self.props.target

        try:
            address = evaluate(self.props.address)

        except NotAvailable:
            if not dry_run:
                raise
            return Result(changed=True, output=f"{target.name}: new address")

        self.props.table.add_to_group(target.name, address)

        if self.props.publish:
            self.props.table.publish(
                HostVars(
                    address=address,
                    source_repo=target.dokku_git_repo,
                    version_pin=target.dokku_version,
                )
            )

        logger.debug("%s resolved to %s", target.name, address)
        return Result(output=address)


class ProvisionTarget(Component):
    """
    Provisioning of one target: the server (a droplet, or the host as it
    is), registration of its address, then DNS records if a DNS provider is
    configured and the server was provisioned by a provider.

    A failed step stops this target only: it is marked as failed in the
    table, so that it is not configured, and the other targets go on.

    :param server_api: API object for the server provider, instead of one
                       built from the target's credentials.
    :param dns_api: API object for the DNS provider, likewise.
    """

    abort_scope = True

    class Props:
        target = Prop(TargetConfig)
        table = Prop(ProvisioningTable)
        public_keys = Prop(list, default=[])
        known_hosts = Prop(Path, default=Path("~/.ssh/known_hosts").expanduser())
        server_api = Prop(Any)
        dns_api = Prop(Any)

    def build(self):
        target = self.props.target

        self.server = get_server_provisioner(target.server_provider).for_target(
            target=target,
            public_keys=self.props.public_keys,
            known_hosts=self.props.known_hosts,
            api=self.props.server_api,
        )

        self.register = GroupRegistration(
            table=self.props.table,
            target=target,
            address=self.server.address,
            publish=self.server.provisioned,
        )

        registrar = get_dns_registrar(target.dns_provider)
        if registrar is not None and not self.server.provisioned:
            logger.warning(
                "%s: dns_provider %r needs a server provider, no records created",
                target.name,
                target.dns_provider,
            )

        elif registrar is not None:
            self.dns = registrar.for_target(
                target=target,
                address=self.server.address,
                api=self.props.dns_api,
            )

    def aborted(self, error):
        self.props.table.mark_failed(
            self.props.target.name, f"provisioning stopped after {error} failed"
        )

    @lazy_property
    def resolved_address(self):
        """
        The address registered for this target. Outside of a deploy, e.g.
        for CLI commands, it's looked up from the provider.
        """

        name = self.props.target.name
        try:
            return self.props.table.address_of(name)

        except NotAvailable:
            address = self.server.lookup_address()
            if address is None:
                raise NotAvailable(f"{name!r} has not been provisioned yet")

            return address

    def add_commands(self, cli):
        @cli.command
        def address():
            """Print the address the target resolves to"""
            click.echo(evaluate(self.resolved_address))


class Provisioning(Component):
    """
    The provisioning phase, for all targets.
    """

    class Props:
        targets = Prop(list)
        table = Prop(ProvisioningTable)
        public_keys = Prop(list, default=[])
        known_hosts = Prop(Path, default=Path("~/.ssh/known_hosts").expanduser())
        apis = Prop(dict, default={})

    def build(self):
        for target in self.props.targets:
            setattr(
                self,
                slug(target.name),
                ProvisionTarget(
                    target=target,
                    table=self.props.table,
                    public_keys=self.props.public_keys,
                    known_hosts=self.props.known_hosts,
                    server_api=self.props.apis.get(target.server_provider),
                    dns_api=self.props.apis.get(target.dns_provider),
                ),
            )

    def for_target(self, name) -> ProvisionTarget:
        return self._children[slug(name)]
