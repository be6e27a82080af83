import logging
from pathlib import Path

from .components import Component
from .lazy import evaluate
from .places import LocalHost
from .props import Prop
from .results import Result

logger = logging.getLogger(__name__)


class KnownHostsCleanup(Component):
    """
    Removes stale ``known_hosts`` entries for a host that was just created,
    so that its new host key is not rejected. Runs only after something it
    is attached to (see :meth:`trigger_after`) reports a change.

    Entries are removed with Ansible's ``known_hosts`` module, which matches
    host names exactly and also finds hashed entries.

    :param path: The ``known_hosts`` file on the local machine.
    :param names: Addresses and host names to forget. May be lazy.
    """

    class Props:
        path = Prop(Path)
        names = Prop(list)

    def build(self):
        self._triggered = False
        self.host = LocalHost()

    def trigger_after(self, other):
        other.on_change.add(self._trigger)

    def _trigger(self, *args):
        self._triggered = True

    def forget(self, name):
        return self.host.ansible_action(
            module="ansible.builtin.known_hosts",
            args=dict(name=name, path=str(self.props.path), state="absent"),
        )

    def deploy(self, dry_run=False):
        if not self._triggered:
            return Result()

        forgotten = []
        for name in self.props.names:
            name = evaluate(name)
            if self.forget(name).run(check=dry_run).changed:
                forgotten.append(name)

        if forgotten:
            logger.info("Forgot %s in %s", ", ".join(forgotten), self.props.path)

        return Result(
            changed=bool(forgotten),
            output="".join(f"- {name}\n" for name in forgotten),
        )
