"""
Exceptions raised before or around the download run.

Per-item outcomes (a failed validation pass, an item that ran out of
attempts) are reported through result objects, not exceptions.
"""


class WorkshopError(Exception):
    """Base exception for all downloader errors."""


class NetworkError(WorkshopError):
    """Raised when a workshop page or the SteamCMD installer cannot be fetched."""


class PageFormatError(WorkshopError):
    """
    Raised when the requested identifier is malformed, or when the fetched
    page carries no application id.
    """


class SteamCmdError(WorkshopError):
    """Raised when SteamCMD cannot be installed or initialized."""


class ProcessSpawnError(SteamCmdError):
    """Raised when the SteamCMD executable could not be launched at all."""
