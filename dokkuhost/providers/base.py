from pathlib import Path

from ..components import Component
from ..inventory import TargetConfig
from ..props import Prop


class ServerProvisioner(Component):
    """
    Makes sure a target has a machine behind it, and tells where to reach
    it through :attr:`address`.

    :param target: Variables of the target.
    :param public_keys: :class:`~dokkuhost.inventory.PublicKey` list that
                        must grant access to the machine.
    :param known_hosts: Local ``known_hosts`` file.
    """

    class Props:
        target = Prop(TargetConfig)
        public_keys = Prop(list, default=[])
        known_hosts = Prop(Path, default=Path("~/.ssh/known_hosts").expanduser())

    #: ``True`` when the machine is created by a provider, and the target's
    #: variables are published for the configuration phase.
    provisioned = False

    @classmethod
    def for_target(cls, target, public_keys, known_hosts, api=None):
        return cls(target=target, public_keys=public_keys, known_hosts=known_hosts)

    @property
    def address(self):
        """
        Address of the machine, possibly lazy.
        """

        raise NotImplementedError

    def lookup_address(self):
        """
        Find the address of an existing machine without changing anything.
        Returns ``None`` if there is no machine yet.
        """

        raise NotImplementedError


class ExistingHost(ServerProvisioner):
    """
    No server provider: the target name is already reachable over SSH.
    """

    @property
    def address(self):
        return self.props.target.name

    def lookup_address(self):
        return self.props.target.name
