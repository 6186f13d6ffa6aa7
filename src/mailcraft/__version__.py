"""Version information for mailcraft."""

__version__ = "0.1.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Release information
__title__ = "mailcraft"
__description__ = "E-mail composition and SMTP delivery"
__license__ = "BSD-3-Clause"


def get_version() -> str:
    """Return the current version string."""
    return __version__
