"""Exception hierarchy for sitecompare."""


class SiteCompareError(Exception):
    """Base exception for all sitecompare errors."""


class ConfigError(SiteCompareError):
    """Raised when the run configuration is invalid."""


class BrowserError(SiteCompareError):
    """Raised when a WebDriver command fails."""

    def __init__(self, message: str, error: str = "") -> None:
        super().__init__(message)
        self.error = error


class NoSuchElementError(BrowserError):
    """Raised when a CSS lookup finds nothing."""


class NoSuchAlertError(BrowserError):
    """Raised when no native dialog is open."""


class UnexpectedAlertError(BrowserError):
    """Raised when a native dialog blocks the command."""


class LoginError(SiteCompareError):
    """Raised when logging in on one side fails."""


class RoleSetupError(SiteCompareError):
    """Raised when a role cannot be started."""


class TransportTimeoutError(BrowserError):
    """Raised when the WebDriver server does not answer in time."""
