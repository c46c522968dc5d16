"""Common schemas and enums shared across the application."""

from enum import Enum


class AuditMode(str, Enum):
    """Device profile requested for an audit."""

    MOBILE = "mobile"
    DESKTOP = "desktop"
    ALL = "all"  # Desktop pass followed by a mobile pass

    def concrete_modes(self) -> list["AuditMode"]:
        """Expand to the single-profile passes this mode stands for."""
        if self is AuditMode.ALL:
            return [AuditMode.DESKTOP, AuditMode.MOBILE]
        return [self]


class AuditBackend(str, Enum):
    """Engine used to produce single-URL audit results."""

    LIGHTHOUSE = "lighthouse"  # Local Lighthouse CLI driving Playwright Chromium
    PSI = "psi"  # Hosted PageSpeed Insights API
