"""
Exception classes for daybridge.
"""


class DaybridgeError(Exception):
    """Base exception for all daybridge errors."""


class DocumentError(DaybridgeError):
    """Raised when the target note cannot be used for a sync pass."""


class DocumentNotFoundError(DocumentError):
    """Raised when the requested note does not exist in the vault."""


class InvalidDocumentDateError(DocumentError):
    """Raised when a note name does not start with a YYYY-MM-DD date."""


class CredentialError(DaybridgeError):
    """Raised when the CalDAV password cannot be resolved."""


class RemoteError(DaybridgeError):
    """Raised when the CalDAV server rejects or cannot serve a request."""
