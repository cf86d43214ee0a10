from dataclasses import dataclass
from typing import Any, Callable, Optional

from logger import log


@dataclass
class TaskResult:
    """Outcome of one unit of work: either a value or an error message."""

    ok: bool
    label: str = ""
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None, label: str = "") -> "TaskResult":
        return cls(ok=True, label=label, value=value)

    @classmethod
    def failure(cls, error: str, label: str = "", value: Any = None) -> "TaskResult":
        return cls(ok=False, label=label, value=value, error=error)


def run_task(label: str, fn: Callable[..., Any], *args, **kwargs) -> TaskResult:
    """Run fn and wrap its return value or exception in a TaskResult."""
    try:
        value = fn(*args, **kwargs)
    except Exception as e:
        log.error(f"Task '{label}' failed: {e}")
        return TaskResult.failure(str(e), label=label)

    if isinstance(value, TaskResult):
        if not value.label:
            value.label = label
        return value
    return TaskResult.success(value, label=label)
