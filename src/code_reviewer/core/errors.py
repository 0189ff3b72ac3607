"""Error kinds raised while reviewing a project."""


class ReviewError(RuntimeError):
    """Base class for all review failures with a user-facing message.

    ``writes`` counts the successful writes made before the failure; they stay on disk.
    """

    def __init__(self, *args: object, writes: int = 0) -> None:
        super().__init__(*args)
        self.writes = writes


class MissingCredential(ReviewError):
    """No API key is configured for the selected planner."""


class EnumerationFailure(ReviewError):
    """The project directory could not be walked."""


class LoopBudgetExceeded(ReviewError):
    """The model kept requesting tools past the per-file round limit."""


class DeadlineExceeded(ReviewError):
    """A file's review ran longer than the per-file deadline."""


class RemoteFailure(ReviewError):
    """The remote model call failed."""


class RemoteTimeout(RemoteFailure):
    """The remote model did not answer in time."""


class ReviewCancelled(ReviewError):
    """The user cancelled the run."""
