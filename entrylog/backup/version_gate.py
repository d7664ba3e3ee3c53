"""
Backup version compatibility gate for EntryLog.

A backup records the application version that produced it. Before a
restore touches the store, the embedded version is compared against the
running application's version:

- Versions are parsed as exactly three integers: major.minor.patch
- Same major version: accepted
- Different major version: rejected, reporting whether the backup is
  older or newer than the running application
- Minor and patch differences never affect the decision

Invariants:
    - A rejected backup never reaches EntryStore.replace_all()
    - Malformed version strings raise MalformedVersionError, never a decision

How to change safely:
    - Bump the major version only for changes old readers cannot handle
    - Keep check_compatibility() side-effect free

Example:
    >>> decision = check_compatibility("1.2.3", "1.0.0")
    >>> decision.accepted
    True
    >>> verify_compatibility("2.0.0", "1.0.0")
    Traceback (most recent call last):
    ...
    entrylog.errors.VersionError: Backup from newer major version (2) is not supported (current: 1).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from ..errors import MalformedVersionError, VersionError

logger = logging.getLogger(__name__)

_COMPONENT = re.compile(r"[0-9]+", re.ASCII)


class VersionDirection(Enum):
    """Where a rejected backup sits relative to the running application."""

    OLDER = "older"
    NEWER = "newer"


@dataclass(frozen=True, order=True)
class SemanticVersion:
    """A parsed major.minor.patch version."""

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, text: str) -> SemanticVersion:
        """Parse a version string.

        Args:
            text: Version string such as "1.4.0"

        Returns:
            Parsed SemanticVersion

        Raises:
            MalformedVersionError: If text is not three non-negative integers
        """
        if not isinstance(text, str):
            raise MalformedVersionError(str(text))
        parts = text.split(".")
        if len(parts) != 3 or not all(_COMPONENT.fullmatch(p) for p in parts):
            raise MalformedVersionError(text)
        major, minor, patch = (int(p) for p in parts)
        return cls(major=major, minor=minor, patch=patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class GateDecision:
    """Outcome of a compatibility check.

    Attributes:
        backup: Parsed backup version
        current: Parsed running version
        direction: None when accepted, otherwise OLDER or NEWER
        reason: Human-readable explanation (empty when accepted)
    """

    backup: SemanticVersion
    current: SemanticVersion
    direction: VersionDirection | None = None
    reason: str = ""

    @property
    def accepted(self) -> bool:
        """Whether the backup may be restored."""
        return self.direction is None

    def __str__(self) -> str:
        status = "ACCEPT" if self.accepted else "REJECT"
        return f"[{status}] backup={self.backup} current={self.current} {self.reason}".rstrip()


def check_compatibility(backup_version: str, current_version: str) -> GateDecision:
    """Decide whether a backup can be restored by the running application.

    Args:
        backup_version: Version string embedded in the backup
        current_version: Version string of the running application

    Returns:
        GateDecision; accepted iff both majors are equal

    Raises:
        MalformedVersionError: If either string fails to parse
    """
    backup = SemanticVersion.parse(backup_version)
    current = SemanticVersion.parse(current_version)

    if backup.major < current.major:
        return GateDecision(
            backup=backup,
            current=current,
            direction=VersionDirection.OLDER,
            reason=(
                f"Backup from older major version ({backup.major}) is not supported "
                f"(current: {current.major})."
            ),
        )
    if backup.major > current.major:
        return GateDecision(
            backup=backup,
            current=current,
            direction=VersionDirection.NEWER,
            reason=(
                f"Backup from newer major version ({backup.major}) is not supported "
                f"(current: {current.major})."
            ),
        )
    return GateDecision(backup=backup, current=current)


def verify_compatibility(backup_version: str, current_version: str) -> SemanticVersion:
    """Raise unless the backup is compatible.

    Args:
        backup_version: Version string embedded in the backup
        current_version: Version string of the running application

    Returns:
        Parsed backup version

    Raises:
        MalformedVersionError: If either string fails to parse
        VersionError: If the major versions differ
    """
    decision = check_compatibility(backup_version, current_version)
    if not decision.accepted:
        raise VersionError(
            decision.reason,
            backup_version=backup_version,
            current_version=current_version,
            direction=decision.direction.value,
        )
    logger.debug(f"Version check passed: {decision}")
    return decision.backup
