import logging
from collections.abc import Callable
from typing import Optional
from warnings import warn

from ansible import context
from ansible.executor.task_queue_manager import TaskQueueManager
from ansible.inventory.manager import InventoryManager
from ansible.module_utils.common.collections import ImmutableDict
from ansible.parsing.dataloader import DataLoader
from ansible.playbook.play import Play
from ansible.plugins.callback import CallbackBase
from ansible.vars.manager import VariableManager

from .components import Component
from .lazy import evaluate
from .places import BaseHost
from .props import Prop
from .results import Result

logger = logging.getLogger(__name__)


class CollectingCallback(CallbackBase):
    def __init__(self):
        super().__init__()
        self.results = []
        self.errors = False

    def v2_runner_on_ok(self, result):
        self.results.append(result._result)

    def v2_runner_on_unreachable(self, result):
        self.errors = True
        self.results.append(result._result)

    def v2_runner_on_failed(self, result, **kwargs):
        self.errors = True
        self.results.append(result._result)


class AnsibleResult(Result):
    """
    Result of running one Ansible module. In addition to the
    :class:`~dokkuhost.results.Result` fields:

    :ivar data: The raw result dictionary returned by the module.
    :ivar msg: Error message reported by Ansible, if any.
    :ivar stdout: ``stdout`` of command-like modules.
    :ivar stderr: ``stderr`` of command-like modules.
    """

    def __init__(self, data, failed):
        self.data = data
        self.msg = data.get("msg", "")
        self.stdout = data.get("stdout", "")
        self.stderr = data.get("stderr", "")
        exception = data.get("exception", "")

        output = "".join(
            f"{part}\n" if part and not part.endswith("\n") else part
            for part in [self.msg, exception, self.stderr, self.stdout]
        )

        for warning in data.get("warnings", []):
            warn(warning)

        super().__init__(
            changed=bool(data.get("changed")),
            output=output.rstrip("\n"),
            failed=failed,
        )


def run_ansible(hostname, ansible_variables, action, check=False):
    """
    Run a single Ansible module against one host, in-process, and return an
    :class:`AnsibleResult`. Raises :class:`~dokkuhost.results.OperationError`
    if the module fails or the host is unreachable.

    :param hostname: Address of the host.
    :param ansible_variables: ``(name, value)`` pairs set as host variables,
                              e.g. ``ansible_user``.
    :param action: Dictionary with ``module`` and ``args``.
    :param check: Run in check mode: report what would change, without
                  changing anything.
    """

    context.CLIARGS = ImmutableDict(
        connection="smart",
        check=check,
        diff=True,
        verbosity=0,
    )

    loader = DataLoader()
    inventory = InventoryManager(loader=loader, sources=f"{hostname},")
    variable_manager = VariableManager(loader=loader, inventory=inventory)
    for name, value in ansible_variables:
        variable_manager.set_host_variable(hostname, name, value)

    callback = CollectingCallback()
    task_queue_manager = TaskQueueManager(
        inventory=inventory,
        variable_manager=variable_manager,
        loader=loader,
        passwords={},
        stdout_callback=callback,
    )

    play = Play().load(
        dict(
            hosts=[hostname],
            gather_facts="no",
            tasks=[{"action": action}],
        ),
        variable_manager=variable_manager,
        loader=loader,
    )

    logger.debug("Ansible %s on %s", action["module"], hostname)

    try:
        task_queue_manager.run(play)

    finally:
        task_queue_manager.cleanup()
        loader.cleanup_all_tmp_files()

    if check and not callback.results:
        # the module does not support check mode
        return Result(changed=True)

    result = AnsibleResult(callback.results[-1], callback.errors)
    result.raise_if_failed(f"Ansible {action['module']} failed on {hostname}")
    return result


class AnsibleAction(Component):
    """
    One configuration step on a host, carried out by an Ansible module.
    Every deploy runs the module; idempotency comes from the module itself
    (``state=present``, ``creates=`` and so on).

    :param host: :class:`~dokkuhost.places.BaseHost` to act on.
    :param module: Fully qualified module name, e.g.
                   ``"ansible.builtin.lineinfile"``.
    :param args: Module arguments. Values may be lazy.
    :param format_output: Optional callable that receives the
                          :class:`AnsibleResult` of a changed step and
                          returns the text to show.
    """

    class Props:
        host = Prop(BaseHost)
        module = Prop(str)
        args = Prop(dict)
        format_output = Prop(Optional[Callable])

    @property
    def action(self):
        return dict(
            module=self.props.module,
            args=evaluate(self.props.args),
        )

    def run(self, check=False):
        """
        Run the module on the host; see :func:`run_ansible`.
        """

        result = run_ansible(
            hostname=evaluate(self.props.host.hostname),
            ansible_variables=self.props.host.ansible_variables,
            action=self.action,
            check=check,
        )

        if result.changed and self.props.format_output:
            if isinstance(result, AnsibleResult):
                result.output = self.props.format_output(result)

        return result

    def deploy(self, dry_run=False):
        return self.run(check=dry_run)
