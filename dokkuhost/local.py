import logging
import os
import subprocess
import sys

from .results import Result

logger = logging.getLogger(__name__)


class LocalRunResult(Result):
    """
    Result of :func:`run`. Besides the :class:`~dokkuhost.results.Result`
    fields it has:

    :ivar completed: The :class:`subprocess.CompletedProcess`.
    :ivar stdout: Standard output of the command.
    :ivar stderr: Standard error of the command.
    """

    def __init__(self, completed, encoding=None):
        def decode(buf):
            return buf.decode(encoding) if encoding else buf

        self.completed = completed
        self.stdout = decode(completed.stdout or b"")
        self.stderr = decode(completed.stderr or b"")

        super().__init__(
            changed=True,
            output=self.stderr + self.stdout,
            failed=completed.returncode != 0,
        )

        logger.debug("%r output:\n====\n%s====", self, self.output)

    def __str__(self):
        return f"{super().__str__()} {self.completed.args}"


def run(
    *args,
    input=None,
    capture_output=True,
    encoding="utf8",
    extra_env=None,
    exit=False,
    check=True,
    **kwargs,
):
    """
    Run a local command with :func:`subprocess.run` and return a
    :class:`LocalRunResult`.

    :param input: Text (or bytes) sent to *stdin*.
    :param capture_output: Capture *stdout* and *stderr* (default). When
                           ``False`` the output goes to the terminal.
    :param encoding: Encoding of input and output. ``None`` keeps bytes.
    :param extra_env: Variables added to :obj:`os.environ` for the command.
    :param exit: Call :func:`sys.exit` with the command's exit code when it
                 finishes. Used by CLI commands that wrap ``ssh``.
    :param check: Raise :class:`~dokkuhost.results.OperationError` if the
                  command fails (default).
    """

    args = [str(arg) for arg in args]

    if input is None:
        logger.debug("Running %r", args)

    else:
        if encoding and isinstance(input, str):
            input = input.encode(encoding)

        logger.debug("Running %r with input = %r", args, input)

    if extra_env:
        kwargs["env"] = dict(os.environ, **extra_env)

    completed = subprocess.run(
        args,
        input=input,
        capture_output=capture_output,
        **kwargs,
    )

    if exit:
        sys.exit(completed.returncode)

    result = LocalRunResult(completed, encoding=encoding)
    if check:
        result.raise_if_failed("Local command failed")

    return result
