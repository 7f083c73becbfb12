"""Exceptions raised by echosync."""

from typing import Optional


class EchoSyncError(Exception):
    """Base exception for all echosync errors."""


class ConfigError(EchoSyncError):
    """Sync settings are missing or malformed."""


class LocalStoreError(EchoSyncError):
    """The local record store could not be opened or a transaction failed."""


class InvalidRecordError(EchoSyncError, ValueError):
    """A record payload lacks a string ``id`` or an integer ``timestamp``."""


class ConnectivityError(EchoSyncError):
    """A remote request failed.

    Aborts the current sync or push step. Local state is left untouched.
    """


class AuthenticationError(ConnectivityError):
    """The WebDAV server rejected the configured credentials."""


class RemoteNetworkError(ConnectivityError):
    """The WebDAV server could not be reached (DNS, refused, timeout...)."""


class RemoteResponseError(ConnectivityError):
    """The WebDAV server answered with an unexpected status code."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidRemoteDataError(ConnectivityError):
    """A remote file exists but does not contain the expected JSON document."""
