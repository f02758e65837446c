"""Error types raised by the onboarding steps."""

from dataclasses import dataclass


class OnboardError(Exception):
    """Base class for onboarding errors."""


class StepFailed(OnboardError):
    """A sequential installation or provisioning step failed.

    The remaining steps of the current call are skipped. Work done by
    earlier steps is left in place.
    """

    def __init__(self, step: str, message: str):
        super().__init__(message)
        self.step = step
        self.message = message

    def __str__(self) -> str:
        return f"{self.step}: {self.message}"


class UnsupportedPlatform(OnboardError):
    """No implementation exists for the detected operating system."""

    def __init__(self, os_name: str):
        super().__init__(f"Unsupported OS: {os_name}")
        self.os_name = os_name


class PreconditionUnmet(OnboardError):
    """An operation was requested before the step it depends on."""


@dataclass
class BestEffortFailure:
    """A cleanup or disable sub-step that failed and was skipped."""
    step: str
    error: str

    def __str__(self) -> str:
        return f"{self.step}: {self.error}"
