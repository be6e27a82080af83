import logging
import shlex
from pathlib import Path
from typing import Optional

import jinja2

from .components import Component, slug
from .handoff import HostVars, ProvisioningTable
from .inventory import TargetConfig
from .lazy import Lazy, evaluate, lazy_property
from .places import BaseHost, SshHost
from .props import Prop

logger = logging.getLogger(__name__)

LOCALE = "en_US.UTF-8"

PACKAGES = [
    "aufs-tools",
    "build-essential",
    "git",
    "software-properties-common",
]

templates = jinja2.Environment(
    loader=jinja2.PackageLoader("dokkuhost", "templates"),
    keep_trailing_newline=True,
    undefined=jinja2.StrictUndefined,
)


def render_site_config(fqdn):
    return templates.get_template("nginx-site.conf.j2").render(fqdn=fqdn)


def acl_add_command(public_keys, sshcommand, user, sentinel):
    """
    Shell command that grants every key access to the dokku user, each under
    its file name, then creates ``sentinel``. If a grant fails, the sentinel
    is not created and the whole command runs again next time.
    """

    grants = [
        f"echo {shlex.quote(key.content)} | "
        f"{shlex.quote(sshcommand)} acl-add {shlex.quote(user)} {shlex.quote(key.name)}"
        for key in public_keys
    ]
    return " && ".join([*grants, f"touch {shlex.quote(str(sentinel))}"])


class DokkuNode(Component):
    """
    Configures a provisioned host to run dokku: locale, SSH keys, packages,
    the dokku install itself, the dokku user's keys, and a default nginx
    site for the host's FQDN.

    The steps run in the order below, every time. Most are idempotent by
    nature; the key grant for the dokku user is not, so it's guarded by a
    sentinel file and runs once per host. Packages, the dokku checkout and
    install, the identity files and the nginx reload are refreshed on every
    run.

    A failed step stops this host only. Hosts whose provisioning failed are
    skipped.

    :param target: Variables of the target.
    :param table: Provisioning results, used to recover the dokku repository
                  and version for this host's address.
    :param address: Address of the host. May be lazy.
    :param public_keys: Keys to authorize for ``root`` and for dokku.
    :param host: Host to configure. Defaults to an
                 :class:`~dokkuhost.places.SshHost` for ``address``.
    :param known_hosts: ``known_hosts`` file for the default host.
    """

    abort_scope = True

    class Props:
        target = Prop(TargetConfig)
        table = Prop(ProvisioningTable)
        address = Prop(str, lazy=True)
        public_keys = Prop(list, default=[])
        host = Prop(Optional[BaseHost])
        known_hosts = Prop(Optional[Path])
        environment_file = Prop(Path, default=Path("/etc/environment"))
        checkout_dir = Prop(Path, default=Path("/root/dokku"))
        dokku_user = Prop(str, default="dokku")
        dokku_home = Prop(Path, default=Path("/home/dokku"))
        nginx_dir = Prop(Path, default=Path("/etc/nginx"))
        sshcommand = Prop(str, default="sshcommand")
        packages = Prop(list, default=PACKAGES)

    def skip_reason(self):
        failure = self.props.table.failure_of(self.props.target.name)
        if failure:
            return f"not configured, {failure}"

    @lazy_property
    def host_vars(self):
        address = evaluate(self.props.address)
        host_vars = self.props.table.lookup(address)

        if host_vars is None:
            target = self.props.target
            logger.debug("No provisioning data for %s, using inventory", address)
            host_vars = HostVars(
                address=address,
                source_repo=target.dokku_git_repo,
                version_pin=target.dokku_version,
            )

        return host_vars

    @lazy_property
    def fqdn(self):
        if self.props.target.fqdn:
            return self.props.target.fqdn

        return self.host.run("hostname", "--fqdn").stdout.strip()

    @lazy_property
    def site_config(self):
        return render_site_config(evaluate(self.fqdn))

    @property
    def site_path(self):
        return Lazy(
            lambda: self.props.nginx_dir / "sites-available" / evaluate(self.fqdn)
        )

    @property
    def site_link_path(self):
        return Lazy(
            lambda: self.props.nginx_dir / "sites-enabled" / evaluate(self.fqdn)
        )

    @property
    def acl_sentinel(self):
        return self.props.dokku_home / ".acl-add-done"

    def environment_line(self, name):
        return self.host.ansible_action(
            module="ansible.builtin.lineinfile",
            args=dict(
                path=str(self.props.environment_file),
                line=f"{name}={LOCALE}",
                state="present",
                create=True,
            ),
        )

    def build(self):
        target = self.props.target
        public_keys = self.props.public_keys

        self.host = self.props.host or SshHost(
            hostname=self.props.address,
            username=target.remote_user,
            known_hosts_file=self.props.known_hosts,
        )

        self.lc_all = self.environment_line("LC_ALL")
        self.lang = self.environment_line("LANG")

        self.root_keys = Component()
        for key in public_keys:
            setattr(
                self.root_keys,
                slug(key.name),
                self.host.ansible_action(
                    module="ansible.posix.authorized_key",
                    args=dict(user="root", key=key.content, state="present"),
                ),
            )

        self.packages = self.host.ansible_action(
            module="ansible.builtin.apt",
            args=dict(name=self.props.packages, state="latest"),
        )

        self.upgrade = self.host.ansible_action(
            module="ansible.builtin.apt",
            args=dict(upgrade="dist", update_cache=True),
        )

        self.checkout = self.host.ansible_action(
            module="ansible.builtin.git",
            args=dict(
                repo=Lazy(lambda: evaluate(self.host_vars).source_repo),
                version=Lazy(lambda: evaluate(self.host_vars).version_pin),
                dest=str(self.props.checkout_dir),
            ),
        )

        self.install = self.host.ansible_action(
            module="ansible.builtin.command",
            args=dict(cmd="make install", chdir=str(self.props.checkout_dir)),
        )

        if public_keys:
            self.acl = self.host.ansible_action(
                module="ansible.builtin.shell",
                args=dict(
                    cmd=acl_add_command(
                        public_keys,
                        sshcommand=self.props.sshcommand,
                        user=self.props.dokku_user,
                        sentinel=self.acl_sentinel,
                    ),
                    creates=str(self.acl_sentinel),
                ),
            )

        self.vhost = self.host.file(
            path=self.props.dokku_home / "VHOST",
            content=self.fqdn,
        )

        self.hostname_file = self.host.file(
            path=self.props.dokku_home / "HOSTNAME",
            content=self.fqdn,
        )

        self.site = self.host.file(
            path=self.site_path,
            content=self.site_config,
        )

        self.default_site = self.host.ansible_action(
            module="ansible.builtin.file",
            args=dict(
                path=str(self.props.nginx_dir / "sites-enabled" / "default"),
                state="absent",
            ),
        )

        self.site_link = self.host.ansible_action(
            module="ansible.builtin.file",
            args=dict(
                src=Lazy(lambda: str(evaluate(self.site_path))),
                dest=Lazy(lambda: str(evaluate(self.site_link_path))),
                state="link",
                force=True,
            ),
        )

        self.nginx_reload = self.host.ansible_action(
            module="ansible.builtin.service",
            args=dict(name="nginx", state="reloaded"),
        )

    def add_commands(self, cli):
        @cli.forward_command
        def dokku(args):
            """Run the dokku command on the host"""
            self.host.run("dokku", *args, capture_output=False, exit=True)
