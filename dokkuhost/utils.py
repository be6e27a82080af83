from pathlib import Path
from tempfile import TemporaryDirectory

from .local import run


def plain_diff(label, before, after):
    with TemporaryDirectory() as tmp:
        before_path = Path(tmp) / "before"
        after_path = Path(tmp) / "after"
        before_path.write_text(before)
        after_path.write_text(after)

        result = run(
            "diff",
            "-U3",
            "--label",
            label,
            "--label",
            label,
            before_path,
            after_path,
            check=False,
        )

    # diff exits with 1 when the files differ
    if result.completed.returncode not in (0, 1):
        result.raise_if_failed("diff failed")

    return result.stdout


def colordiff(label, before, after):
    return run("colordiff", input=plain_diff(label, before, after)).stdout


def diff(label, before, after):
    """
    Unified diff between two versions of a file on a target host, colored
    when ``colordiff`` is installed.
    """

    if run("which", "colordiff", check=False).stdout:
        return colordiff(label, before, after)

    return plain_diff(label, before, after)
