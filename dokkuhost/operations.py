import logging
import pdb
import sys
from collections import Counter

from click import echo, style

from .lazy import Lazy, NotAvailable, evaluate
from .results import Aborted, OperationError, Result

logger = logging.getLogger(__name__)


class AbortOperation(RuntimeError):
    """
    Raised when a step fails. The remaining steps of the enclosing
    ``abort_scope`` component (or of the whole operation, outside of one)
    are not run; nothing that already ran is undone.
    """


class Operation:
    """
    What to do with the components of a stack.

    :param deploy: Bring the targets to the configured state.
    :param dry_run: Only report what would change.
    """

    FLAGS = ["deploy", "dry_run"]

    def __init__(self, **kwargs):
        for flag in self.FLAGS:
            setattr(self, flag, kwargs.pop(flag, False))
        assert not kwargs, f"Unknown flags: {list(kwargs)}"

    def __str__(self):
        return ", ".join(flag for flag in self.FLAGS if getattr(self, flag))

    def __repr__(self):
        return f"<Operation {self}>"


class Printer:
    STATUS = {
        "wip": ("...", dict(dim=True), dict(dim=True)),
        "failed": ("[failed]", dict(fg="red"), dict(fg="red")),
        "changed": ("[changed]", dict(fg="yellow"), dict(fg="yellow")),
        "ok": ("[ok]", dict(dim=True), dict(fg="green")),
    }

    def __init__(self, component, suffix=""):
        self.component = component
        self.label = f"{component}{suffix}"
        self.type_label = type(component).__name__

    def print_component(self, wip=False, failed=False, changed=False):
        if wip:
            key = "wip"
        elif failed:
            key = "failed"
        elif changed:
            key = "changed"
        else:
            key = "ok"

        status, label_color, status_color = self.STATUS[key]
        echo(
            " ".join(
                [
                    style(self.label, **label_color),
                    style(self.type_label, fg="cyan"),
                    style(status, **status_color),
                ]
            )
        )

    def print_result(self, result, overwrite=False):
        if overwrite:
            echo("\033[F", nl=False)

        self.print_component(failed=result.failed, changed=result.changed)

        if result.failed or result.changed:
            result.print_output()


class Runner:
    def __init__(self, component, dry_run=False, use_pdb=False):
        self.component = component
        self.printer = Printer(component)
        self.dry_run = dry_run
        self.use_pdb = use_pdb

    def run(self, func, *args, **kwargs):
        self.printer.print_component(wip=True)

        try:
            result = func(*args, **kwargs)

            if isinstance(result, Lazy):
                overwrite = False
                result = evaluate(result)

            else:
                overwrite = True

            self.printer.print_result(result, overwrite=overwrite)
            return result

        except NotAvailable as exception:
            result = Result(failed=True, output=exception.args[0])
            self.printer.print_result(result)
            if not self.dry_run:
                echo(style("Operation failed!", fg="red"), file=sys.stderr)
                raise AbortOperation(str(self.component)) from exception

            return result

        except OperationError as exception:
            logger.warning("Step failed on %s: %r", self.component, exception)

            if self.use_pdb:
                logger.exception("Step failed")
                pdb.post_mortem()
                sys.exit(1)

            self.printer.print_result(exception.result)
            echo(style("Operation failed!", fg="red"), file=sys.stderr)
            raise AbortOperation(str(self.component)) from exception


def iter_apply_tree(component, op, use_pdb):
    logger.debug("Applying %r to %r", op, component)

    for child in component:
        yield from iter_apply(child, op, use_pdb)

    if op.deploy and hasattr(component, "deploy"):
        runner = Runner(component, op.dry_run, use_pdb)
        yield component, runner.run(component.deploy, dry_run=op.dry_run)


def iter_apply_scope(component, op, use_pdb):
    reason = component.skip_reason()
    if reason:
        logger.warning("Skipping %s: %s", component, reason)
        result = Aborted(output=reason)

    else:
        try:
            yield from iter_apply_tree(component, op, use_pdb)
            return

        except AbortOperation as error:
            component.aborted(error)
            result = Aborted(output=f"Stopped after {error} failed")

    Printer(component).print_result(result)
    yield component, result


def iter_apply(component, op, use_pdb):
    if component.abort_scope:
        yield from iter_apply_scope(component, op, use_pdb)

    else:
        yield from iter_apply_tree(component, op, use_pdb)


def apply(component, use_pdb=False, **kwargs):
    """
    Apply an operation to ``component`` and, recursively, to its children.
    Children are processed before their parent, in the order they were
    attached. Returns a dictionary of results, keyed by component.

    A failed step aborts the operation, unless it happens inside an
    ``abort_scope`` component: then only that component is stopped, and it
    gets an :class:`~dokkuhost.results.Aborted` result.

    :param kwargs: Flags for :class:`Operation`.
    """

    op = Operation(**kwargs)
    results = {}
    for target, result in iter_apply(component, op, use_pdb):
        results[target] = result
    return results


def aborted_targets(results):
    return [
        component
        for component, result in results.items()
        if isinstance(result, Aborted)
    ]


def print_report(results):
    ok_count = sum(1 for r in results.values() if not (r.changed or r.failed))
    changed_count = sum(1 for r in results.values() if r.changed)
    failed_count = sum(1 for r in results.values() if r.failed)

    if ok_count:
        echo(style(f"{ok_count} ok", fg="green"))

    if changed_count:
        echo(style(f"{changed_count} changed", fg="yellow"))

    if failed_count:
        echo(style(f"{failed_count} failed", fg="red"))

    by_type = Counter(
        type(component).__name__
        for component, result in results.items()
        if result.changed or result.failed
    )
    for name, number in by_type.items():
        echo(style(f"{name}: {number}", dim=True))

    for component in aborted_targets(results):
        echo(style(f"Aborted: {component}", fg="red"))
