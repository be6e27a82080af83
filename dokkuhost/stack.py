import logging
from pathlib import Path
from typing import Optional

from .components import Component, Stack, slug
from .dokku import DokkuNode
from .handoff import ProvisioningTable
from .inventory import Inventory
from .props import Prop
from .provisioning import Provisioning

logger = logging.getLogger(__name__)


class Configuration(Component):
    """
    The configuration phase: one :class:`~dokkuhost.dokku.DokkuNode` per
    target, reached at the address resolved during provisioning.
    """

    class Props:
        provisioning = Prop(Provisioning)
        table = Prop(ProvisioningTable)
        public_keys = Prop(list, default=[])
        known_hosts = Prop(Optional[Path])
        node_options = Prop(dict, default={})

    def build(self):
        for target in self.props.provisioning.props.targets:
            provision = self.props.provisioning.for_target(target.name)
            setattr(
                self,
                slug(target.name),
                DokkuNode(
                    target=target,
                    table=self.props.table,
                    address=provision.resolved_address,
                    public_keys=self.props.public_keys,
                    known_hosts=self.props.known_hosts,
                    **self.props.node_options,
                ),
            )


class SiteStack(Stack):
    """
    Everything described by an inventory: provisioning of every target,
    then configuration of every resolved host.

    :param inventory: The loaded :class:`~dokkuhost.inventory.Inventory`.
    :param apis: Provider API objects keyed by provider name, used instead
                 of ones built from the inventory credentials.
    :param node_options: Extra props for every
                         :class:`~dokkuhost.dokku.DokkuNode`.
    """

    class Props:
        inventory = Prop(Inventory)
        apis = Prop(dict, default={})
        node_options = Prop(dict, default={})

    def build(self):
        inventory = self.props.inventory
        public_keys = inventory.public_keys
        logger.debug(
            "Using %d public keys from %s", len(public_keys), inventory.authorized_keys
        )

        self.table = ProvisioningTable()

        self.provisioning = Provisioning(
            targets=inventory.targets,
            table=self.table,
            public_keys=public_keys,
            known_hosts=inventory.known_hosts,
            apis=self.props.apis,
        )

        self.configuration = Configuration(
            provisioning=self.provisioning,
            table=self.table,
            public_keys=public_keys,
            known_hosts=inventory.known_hosts,
            node_options=self.props.node_options,
        )
