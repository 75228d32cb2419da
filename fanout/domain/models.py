# /fanout/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# ==== Errors ====


class ConfigError(ValueError):
    """Invalid dispatch input, raised before any target is enumerated."""


class Outcome(str, Enum):
    OK = "ok"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureCause(str, Enum):
    TIMEOUT = "timeout"
    REFUSED = "refused"
    UNREACHABLE = "unreachable"
    PROTOCOL = "protocol"
    INTERNAL = "internal"


class WorkFailure(Exception):
    """Raised by a worker when a target could not be processed."""

    def __init__(self, cause: FailureCause, detail: str = "") -> None:
        super().__init__(detail or cause.value)
        self.cause = cause
        self.detail = detail


class UnitStopped(Exception):
    """Raised inside a work unit that observed a stop request."""


# ==== DTOs ====


@dataclass(frozen=True, slots=True)
class Target:
    address: str
    port: str

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass(slots=True)
class UnitResult:
    target: Target
    outcome: Outcome
    cause: FailureCause | None = None
    detail: str = ""
    elapsed: float = 0.0

    def render(self) -> str:
        line = f"{self.target} {self.outcome.value}"
        if self.cause is not None:
            line += f" ({self.cause.value})"
        if self.detail:
            line += f": {self.detail}"
        return line

    def as_dict(self) -> dict:
        return {
            "target": str(self.target),
            "outcome": self.outcome.value,
            "cause": self.cause.value if self.cause else None,
            "detail": self.detail,
            "elapsed": round(self.elapsed, 6),
        }


@dataclass(slots=True)
class DispatchReport:
    results: list[UnitResult] = field(default_factory=list)
    produced: int = 0
    started: int = 0
    completed: int = 0
    stopped: bool = False
    stop_reason: str | None = None

    def _with(self, outcome: Outcome) -> list[UnitResult]:
        return [r for r in self.results if r.outcome is outcome]

    @property
    def succeeded(self) -> list[UnitResult]:
        return self._with(Outcome.OK)

    @property
    def failed(self) -> list[UnitResult]:
        return self._with(Outcome.FAILED)

    @property
    def cancelled(self) -> list[UnitResult]:
        return self._with(Outcome.CANCELLED)

    @property
    def exit_code(self) -> int:
        if self.stopped and self.stop_reason == "interrupted":
            return 130
        return 1 if self.failed else 0

    def summary(self) -> str:
        line = (
            f"all work finished: {self.completed} of {self.produced} targets, "
            f"{len(self.succeeded)} ok, {len(self.failed)} failed"
        )
        if self.cancelled:
            line += f", {len(self.cancelled)} cancelled"
        if self.stopped:
            line += f" (stopped: {self.stop_reason})"
        return line

    def as_dict(self) -> dict:
        return {
            "produced": self.produced,
            "started": self.started,
            "completed": self.completed,
            "stopped": self.stopped,
            "stop_reason": self.stop_reason,
            "exit_code": self.exit_code,
            "results": [r.as_dict() for r in self.results],
        }
