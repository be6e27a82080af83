import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Optional

from .components import Component
from .lazy import Lazy, evaluate
from .local import LocalRunResult, run
from .props import Prop
from .utils import diff

logger = logging.getLogger(__name__)


class BaseHost(Component):
    """
    A machine that commands and Ansible modules run on.
    """

    ansible_variables: list

    def file(self, **props):
        """
        Return a :class:`File` on this host; ``props`` are forwarded.
        """

        return File(host=self, **props)

    def ansible_action(self, **props):
        """
        Return an :class:`~dokkuhost.ansible.AnsibleAction` that runs on this
        host; ``props`` are forwarded.
        """

        from .ansible import AnsibleAction

        return AnsibleAction(host=self, **props)

    def run(self, *args, **kwargs) -> LocalRunResult: ...

    def add_commands(self, cli):
        @cli.forward_command
        def run(args):
            """Run a command on the host, or open a shell"""
            self.run(*args, capture_output=False, exit=True)


class LocalHost(BaseHost):
    """
    The machine dokkuhost runs on. Ansible uses the ``local`` connection with
    the current Python interpreter.
    """

    hostname = "localhost"
    ansible_variables = [
        ("ansible_connection", "local"),
        ("ansible_python_interpreter", sys.executable),
    ]

    def run(self, *args, **kwargs):
        if not args:
            args = [os.environ.get("SHELL", "sh")]

        return run(*args, **kwargs)


class SshHost(BaseHost):
    """
    A remote host reached over SSH. ``hostname`` may be lazy, because for a
    freshly created droplet the address is only known after provisioning.

    :param hostname: Address or name of the host.
    :param username: Remote user to log in as.
    :param port: SSH port.
    :param private_key_file: Identity file used for authentication.
    :param config_file: SSH configuration file used instead of
                        ``~/.ssh/config``.
    :param known_hosts_file: ``known_hosts`` file used instead of
                             ``~/.ssh/known_hosts``.
    :param accept_new_host_key: Trust the host key of a host that is not in
                                ``known_hosts`` yet, but still refuse a
                                changed key. Defaults to ``True``.
    :param interpreter: Python interpreter for Ansible on the remote host.
    """

    class Props:
        hostname = Prop(str, lazy=True)
        username = Prop(Optional[str])
        port = Prop(Optional[int])
        private_key_file = Prop(Optional[Path])
        config_file = Prop(Optional[Path])
        known_hosts_file = Prop(Optional[Path])
        accept_new_host_key = Prop(bool, default=True)
        interpreter = Prop(str, default="python3")

    @property
    def hostname(self):
        return self.props.hostname

    @property
    def ssh_options(self):
        options = []

        if self.props.config_file:
            options += ["-F", str(self.props.config_file)]

        if self.props.known_hosts_file:
            options += ["-o", f"UserKnownHostsFile={self.props.known_hosts_file}"]

        if self.props.accept_new_host_key:
            options += ["-o", "StrictHostKeyChecking=accept-new"]

        return options

    @property
    def ansible_variables(self):
        variables = [("ansible_python_interpreter", self.props.interpreter)]

        if self.props.port:
            variables.append(("ansible_ssh_port", str(self.props.port)))

        if self.props.username:
            variables.append(("ansible_user", self.props.username))

        if self.props.private_key_file:
            variables.append(
                ("ansible_ssh_private_key_file", str(self.props.private_key_file))
            )

        if self.ssh_options:
            variables.append(("ansible_ssh_common_args", shlex.join(self.ssh_options)))

        return variables

    def run(self, *args, ssh_tty=False, **kwargs):
        """
        Run a command on the host with ``ssh``. Without ``args``, open a
        login shell.
        """

        destination = evaluate(self.hostname)
        if self.props.username:
            destination = f"{self.props.username}@{destination}"

        ssh_args = ["ssh", *self.ssh_options]

        if self.props.port:
            ssh_args += ["-p", str(self.props.port)]

        if self.props.private_key_file:
            ssh_args += ["-i", str(self.props.private_key_file)]

        if ssh_tty:
            ssh_args.append("-t")

        ssh_args += [destination, "--"]

        cwd = kwargs.pop("cwd", None)
        if cwd is not None:
            ssh_args += ["cd", shlex.quote(str(cwd)), "&&"]

        return run(*ssh_args, *args, **kwargs)


class File(Component):
    """
    A regular file on a host, written with Ansible's ``copy`` module. The
    file is overwritten whenever its content differs; in a dry run the
    difference is shown as a unified diff.

    :param host: The host.
    :param path: Absolute path of the file. May be lazy.
    :param content: Content of the file. May be lazy.
    :param mode: Unix permissions (optional).
    :param owner: Owning user (optional).
    :param group: Owning group (optional).
    """

    class Props:
        host = Prop(BaseHost)
        path = Prop(Path, lazy=True)
        content = Prop(str, lazy=True)
        mode = Prop(Optional[str])
        owner = Prop(Optional[str])
        group = Prop(Optional[str])

    @property
    def host(self):
        return self.props.host

    @property
    def path(self):
        return self.props.path

    def build(self):
        args = dict(
            content=self.props.content,
            dest=Lazy(lambda: str(evaluate(self.path))),
        )

        for name in ["mode", "owner", "group"]:
            value = getattr(self.props, name)
            if value:
                args[name] = value

        self.action = self.host.ansible_action(
            module="ansible.builtin.copy",
            args=args,
            format_output=self.format_output,
        )

    def format_output(self, result):
        data_diff = result.data.get("diff")
        if not data_diff:
            return result.output

        if isinstance(data_diff, dict):
            data_diff = [data_diff]

        path = str(evaluate(self.path))
        return "".join(
            diff(path, str(item.get("before", "")), str(item.get("after", "")))
            for item in data_diff
        )
