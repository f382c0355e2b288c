"""Error taxonomy shared by the engine and the CLI.

Every error carries a ``kind`` (precondition, conflict, transient, fatal)
and a ``context`` dict naming the repository, branch and failed check so a
caller can decide whether to retry, force, or fix state by hand.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any


class ErrorKind(str, Enum):
    PRECONDITION = "precondition"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    FATAL = "fatal"


class ExitCode(IntEnum):
    OK = 0
    ERROR = 1
    # 2 is Typer's usage-error code
    PARTIAL_FAILURE = 3
    HARD_PRECONDITION = 4


class LinkctlError(Exception):
    kind: ErrorKind = ErrorKind.FATAL
    exit_code: ExitCode = ExitCode.ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        return self.message


class ToolMissingError(LinkctlError):
    """``git`` or ``gh`` is not on PATH."""

    kind = ErrorKind.FATAL
    exit_code = ExitCode.HARD_PRECONDITION


class CommandError(LinkctlError):
    """A git/gh subprocess exited non-zero."""

    def __init__(
        self, argv: list[str], returncode: int, stderr: str, cwd: str | None = None
    ) -> None:
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"{' '.join(argv[:2])}: {detail}", cwd=cwd)
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr


class GitCommandError(CommandError):
    pass


class HostingCommandError(CommandError):
    kind = ErrorKind.TRANSIENT


# ---------------------------------------------------------------------------
# precondition
# ---------------------------------------------------------------------------

class PreconditionError(LinkctlError):
    kind = ErrorKind.PRECONDITION


class NotFoundError(PreconditionError):
    def __init__(self, message: str, known: list[str] | None = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.known = sorted(known or [])


class DirtyWorkingTreeError(PreconditionError):
    pass


class NotAuthenticatedError(PreconditionError):
    exit_code = ExitCode.HARD_PRECONDITION


# ---------------------------------------------------------------------------
# conflict / transient / fatal
# ---------------------------------------------------------------------------

class BranchConflictError(LinkctlError):
    kind = ErrorKind.CONFLICT


class DivergedHistoryError(LinkctlError):
    kind = ErrorKind.CONFLICT


class TransientError(LinkctlError):
    kind = ErrorKind.TRANSIENT


class FatalError(LinkctlError):
    kind = ErrorKind.FATAL
    exit_code = ExitCode.HARD_PRECONDITION


class NotAParentRepositoryError(FatalError):
    pass


_CONFLICT_MARKERS = (
    "not possible to fast-forward",
    "diverging branches",
    "have diverged",
    "non-fast-forward",
    "conflict",
    "would be overwritten",
    "fetch first",
)


def classify_git_failure(exc: GitCommandError) -> LinkctlError:
    """Map a failed git call to a Conflict or Transient error.

    Anything that is not recognizably a history/merge problem is treated as
    transient (network, remote hung up, index lock).
    """
    text = exc.stderr.lower()
    if any(marker in text for marker in _CONFLICT_MARKERS):
        return DivergedHistoryError(exc.message, **exc.context)
    return TransientError(exc.message, **exc.context)
