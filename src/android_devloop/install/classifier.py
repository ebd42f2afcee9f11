"""Install failure classifier - maps raw installer output to a failure kind."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InstallFailureKind(Enum):
    """Closed set of installation failure kinds."""

    INSUFFICIENT_STORAGE = "insufficient_storage"
    DUPLICATE_PACKAGE = "duplicate_package"
    INVALID_APK = "invalid_apk"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FailureRule:
    """One row of the classification table."""

    needles: tuple[str, ...]
    kind: InstallFailureKind
    suggestion: str


# Order matters: the first rule with a matching needle wins.
FAILURE_RULES: tuple[FailureRule, ...] = (
    FailureRule(
        needles=("insufficient_storage",),
        kind=InstallFailureKind.INSUFFICIENT_STORAGE,
        suggestion="Free up space on the device: uninstall unused apps or clear app data.",
    ),
    FailureRule(
        needles=("already_exists", "duplicate_package"),
        kind=InstallFailureKind.DUPLICATE_PACKAGE,
        suggestion="The app is already installed: uninstall it or force a reinstall.",
    ),
    FailureRule(
        needles=("invalid_apk", "failed to parse"),
        kind=InstallFailureKind.INVALID_APK,
        suggestion="The APK is corrupted or invalid: rebuild the project.",
    ),
    FailureRule(
        needles=("permission denied", "user_restricted"),
        kind=InstallFailureKind.PERMISSION_DENIED,
        suggestion="Allow installs from unknown sources and check the device's install policy.",
    ),
)

UNKNOWN_SUGGESTION = "Check the device connection and the Android toolchain, then retry."


@dataclass(frozen=True)
class Classification:
    kind: InstallFailureKind
    suggestion: str


@dataclass(frozen=True)
class InstallOutcome:
    """Raw result of one install attempt."""

    success: bool
    diagnostic: str | None = None


@dataclass(frozen=True)
class InstallFailure:
    """A classified install failure handed to the recovery coordinator."""

    kind: InstallFailureKind
    diagnostic: str
    suggestion: str


def classify(diagnostic: str) -> Classification:
    """Classify installer output by case-insensitive substring match."""
    text = diagnostic.lower()
    for rule in FAILURE_RULES:
        if any(needle in text for needle in rule.needles):
            return Classification(kind=rule.kind, suggestion=rule.suggestion)
    return Classification(kind=InstallFailureKind.UNKNOWN, suggestion=UNKNOWN_SUGGESTION)


def classify_failure(diagnostic: str) -> InstallFailure:
    """Classify and bundle the diagnostic for recovery."""
    classification = classify(diagnostic)
    return InstallFailure(
        kind=classification.kind,
        diagnostic=diagnostic,
        suggestion=classification.suggestion,
    )
