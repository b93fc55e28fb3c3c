"""Error kinds raised by siteflow tasks.

Every failure that can leave a task surfaces as a TaskError subclass carrying
the failing task's name, a human-readable message and the original exception.
Composition boundaries (sequence/concurrent) propagate these unchanged, and the
CLI turns them into a styled message plus a non-zero exit code.
"""

from __future__ import annotations


class TaskError(Exception):
    """Base error for a failed task.

    Attributes:
        task: Name of the task that failed (None outside of a task).
        message: Human-readable error message.
        original_error: The exception that was caught, if any.
    """

    def __init__(
        self,
        message: str,
        task: str | None = None,
        original_error: Exception | None = None,
    ):
        self.task = task
        self.message = message
        self.original_error = original_error
        super().__init__(f"{task}: {message}" if task else message)

    def with_task(self, task: str) -> TaskError:
        """Attach a task name if none has been recorded yet."""
        if self.task is None:
            self.task = task
            self.args = (f"{task}: {self.message}",)
        return self


class MissingSourceError(TaskError):
    """A declared input path does not exist."""


class CollaboratorError(TaskError):
    """An external transformation tool reported a failure."""


class FilesystemError(TaskError):
    """Permission or IO failure while reading, writing or deleting."""


class DuplicateTaskError(TaskError):
    """A task name was registered twice."""


class UnknownTaskError(TaskError):
    """A task name was looked up but never registered."""


class PublishError(TaskError):
    """Pushing the release directory to the remote failed."""


class ConfigError(TaskError):
    """siteflow.yaml contains an unknown option or an invalid value."""
