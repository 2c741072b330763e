"""Errors raised while reading or changing a task ledger."""


class LedgerError(ValueError):
    pass


class TaskNotFound(LedgerError):
    def __init__(self, task_id: str, message: str | None = None):
        self.task_id = task_id
        super().__init__(message or f"Task '{task_id}' not found")


class TaskNotTaken(TaskNotFound):
    """The task exists only as a backlog reference."""

    def __init__(self, task_id: str):
        super().__init__(
            task_id,
            f"Task '{task_id}' is not in the body section (hint: run 'task take {task_id}' first)",
        )


class HeaderNotFound(LedgerError):
    def __init__(self, header: str):
        self.header = header
        super().__init__(f"Header '{header}' not found in task body")


class AlreadyOwned(LedgerError):
    def __init__(self, task_id: str, owner: str):
        self.task_id = task_id
        self.owner = owner
        super().__init__(f"Task '{task_id}' is already taken by @{owner}")


class NotOwned(LedgerError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' has no owner (use --force to release anyway)")


class DuplicateId(LedgerError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Duplicate task id '{task_id}'")


class MalformedLedger(LedgerError):
    def __init__(self, reason: str, line_num: int | None = None):
        self.line_num = line_num
        where = f" (line {line_num})" if line_num is not None else ""
        super().__init__(f"Malformed task ledger{where}: {reason}")


class InvalidTaskArguments(LedgerError):
    pass
