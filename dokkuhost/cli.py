import logging
import pdb
import sys

import click

from .inventory import InventoryError, get_inventory_path, load_inventory
from .operations import AbortOperation, aborted_targets, apply, print_report

logger = logging.getLogger(__name__)


def lookup(component, path):
    for name in path.split("."):
        if name == "-":
            continue

        component = component._children[name]

    return component


class ComponentGroup(click.Group):
    def forward_command(self, *args, **kwargs):
        """
        Like :meth:`click.Group.command`, for commands that wrap another
        program. Arguments that are not parsed by the command itself are
        collected, unprocessed, into an ``args`` tuple.
        """

        func = None
        if len(args) == 1 and not kwargs and callable(args[0]):
            func = args[0]
            args = ()

        def decorator(func):
            kwargs.setdefault("context_settings", {}).update(
                ignore_unknown_options=True,
                allow_interspersed_args=False,
            )
            command = super(ComponentGroup, self).command(*args, **kwargs)(func)
            command.params.append(
                click.Argument(("args",), nargs=-1, type=click.UNPROCESSED)
            )
            return command

        if func:
            return decorator(func)

        return decorator


def get_cli(component) -> click.Group:
    """
    Build the CLI of ``component``: the generic commands, plus whatever the
    component adds in :meth:`~dokkuhost.components.Component.add_commands`.
    """

    @click.group(cls=ComponentGroup)
    def cli():
        pass

    @cli.command()
    def id():
        """Show the component"""
        click.echo(repr(component))

    @cli.command()
    def ls():
        """List the child components"""
        for child in component:
            click.echo(f"{child._meta.name}: {child!r}")

    @cli.forward_command("component")
    @click.pass_context
    @click.argument("path")
    def component_(ctx, path, args):
        """Run a command of a child component"""
        target = lookup(component, path)
        get_cli(target)(obj=ctx.obj, args=args)

    def run_operation(ctx, use_pdb, **kwargs):
        try:
            results = apply(component, use_pdb=use_pdb, **kwargs)

        except AbortOperation as error:
            logger.debug("Aborted at %s", error)
            ctx.exit(1)

        print_report(results)

        if aborted_targets(results):
            ctx.exit(1)

    @cli.command()
    @click.option("-n", "--dry-run", is_flag=True, help="Only show what would change")
    @click.option("--pdb", "use_pdb", is_flag=True)
    @click.pass_context
    def deploy(ctx, dry_run, use_pdb):
        """Provision and configure the targets"""
        run_operation(ctx, use_pdb, deploy=True, dry_run=dry_run)

    @cli.command()
    @click.option("--pdb", "use_pdb", is_flag=True)
    @click.pass_context
    def diff(ctx, use_pdb):
        """Show what a deploy would change"""
        run_operation(ctx, use_pdb, deploy=True, dry_run=True)

    component.add_commands(cli)

    return cli


def get_main_cli(get_stack) -> click.Command:
    """
    Create the ``dokkuhost`` command. ``get_stack`` is called with the path
    of the inventory file and returns the stack to operate on.
    """

    @click.command(
        context_settings=dict(
            ignore_unknown_options=True,
            allow_interspersed_args=False,
        )
    )
    @click.option(
        "-i",
        "--inventory",
        type=click.Path(dir_okay=False),
        help="Inventory file (default: $DOKKUHOST_INVENTORY or inventory.yml)",
    )
    @click.option("-d", "--debug", is_flag=True)
    @click.option("--pdb", "use_pdb", is_flag=True)
    @click.argument("args", nargs=-1, type=click.UNPROCESSED)
    @click.pass_context
    def cli(ctx, inventory, debug, use_pdb, args):
        logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)
        ctx.ensure_object(dict)

        try:
            stack = get_stack(get_inventory_path(inventory))

        except InventoryError as error:
            raise click.ClickException(str(error))

        try:
            return get_cli(stack)(obj=ctx.obj, args=["component", *args])

        except Exception:
            if use_pdb:
                logger.exception("Command failed")
                pdb.post_mortem()
                sys.exit(1)

            raise

    return cli


def get_stack(inventory_path):
    from .stack import SiteStack

    return SiteStack(inventory=load_inventory(inventory_path))


def main():
    """
    Entry point of the ``dokkuhost`` command.
    """

    get_main_cli(get_stack)(obj={})
