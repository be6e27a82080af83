import logging
from dataclasses import dataclass
from typing import Optional

from .lazy import NotAvailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostVars:
    address: str
    source_repo: str
    version_pin: str


class ProvisioningTable:
    """
    Results of the provisioning phase, handed to the configuration phase.

    Every target registers the address it resolved to; together these form
    the group of hosts to configure. Targets backed by a server provider
    also publish their :class:`HostVars`, which the configuration phase
    looks up by address. A target whose provisioning failed is taken out
    of the group, and the configuration phase skips it.
    """

    def __init__(self):
        self._group = {}
        self._host_vars = {}
        self._failed = {}

    def __iter__(self):
        return iter(self._group.values())

    def __len__(self):
        return len(self._group)

    def add_to_group(self, target, address):
        previous = self._group.get(target)
        if previous is not None and previous != address:
            logger.info("Target %s moved from %s to %s", target, previous, address)
            self._host_vars.pop(previous, None)

        self._group[target] = address

    def publish(self, host_vars: HostVars):
        logger.debug("Publishing %r", host_vars)
        self._host_vars[host_vars.address] = host_vars

    def address_of(self, target) -> str:
        try:
            return self._group[target]

        except KeyError:
            raise NotAvailable(f"Address of {target!r} is not known yet")

    def lookup(self, address) -> Optional[HostVars]:
        return self._host_vars.get(address)

    def mark_failed(self, target, reason):
        logger.warning("Target %s failed: %s", target, reason)
        self._failed[target] = reason
        address = self._group.pop(target, None)
        if address is not None:
            self._host_vars.pop(address, None)

    def failure_of(self, target) -> Optional[str]:
        return self._failed.get(target)
