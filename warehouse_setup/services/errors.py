from __future__ import annotations

from typing import Optional


class SetupError(RuntimeError):
    """Base class for every failure that aborts a setup run.

    `step` is filled in by the orchestrator when the error escapes a step, so the
    CLI can tell the operator where the run stopped. `hint` is a short,
    actionable suggestion (permissions, public sharing, region...).
    """

    default_hint: Optional[str] = None

    def __init__(self, message: str, *, hint: Optional[str] = None, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.hint = hint if hint is not None else self.default_hint
        self.step = step


class ProvisionError(SetupError):
    """A bucket or workgroup could not be confirmed after a create/update attempt."""

    default_hint = (
        "Check IAM permissions; bucket names are global, so the name may already belong to another account."
    )
