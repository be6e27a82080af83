from click import echo


class OperationError(Exception):
    """
    Raised when a call to an external system fails: a provider API, a local
    command, or an Ansible module on the target host.

    :ivar result: The failed :class:`Result`, with the error output.
    """

    def __init__(self, *args, result):
        assert result.failed
        self.result = result
        super().__init__(*args)

    def __repr__(self):
        return f"<{type(self).__name__} {self.args!r}>"


class Result:
    """
    Outcome of a single provisioning or configuration step.

    :ivar changed: ``True`` if the step modified anything (or, in a dry run,
                   would modify anything).
    :ivar output: Text to show the operator.
    :ivar failed: ``True`` if the step failed.
    """

    def __init__(self, changed=False, output="", failed=False):
        self.changed = changed
        self.output = output
        self.failed = failed

    def __repr__(self):
        return f"<{type(self).__name__} changed={self.changed} failed={self.failed}>"

    def raise_if_failed(self, *args):
        """
        Raise :class:`OperationError` with ``args`` if the result failed.
        """

        if self.failed:
            raise OperationError(*args, result=self)

    def print_output(self):
        if self.output:
            echo(self.output.rstrip("\n"))


class Aborted(Result):
    """
    Result recorded for a target whose run was stopped by a failed step, or
    which was skipped because provisioning failed for it. A run with any
    aborted target exits with an error once the other targets are done.
    """

    def __init__(self, output=""):
        super().__init__(failed=True, output=output)
