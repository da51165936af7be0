"""
Error taxonomy for the service layer.

Each error carries the HTTP status it maps to at the request boundary and an
optional ``details`` string holding raw diagnostic text from the tool.
"""

from typing import Optional


class ClipdropError(Exception):
    """Base class for errors that are reported to the client as JSON"""

    status = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(ClipdropError):
    """Missing or malformed request field; the caller can fix it"""

    status = 400


class UpstreamToolError(ClipdropError):
    """The external tool failed, timed out, overflowed its output cap or printed garbage"""

    status = 500


class NoFormatsAvailable(ClipdropError):
    """The tool answered but reported nothing that can be downloaded"""

    status = 404

    def __init__(self, message: str = 'No downloadable formats found', details=None):
        super().__init__(message, details)


class ArtifactNotFound(ClipdropError):
    """The tool exited cleanly but no output file could be found"""

    status = 500

    def __init__(self, message: str = 'No output file found', details=None):
        super().__init__(message, details)


class NotFound(ClipdropError):
    """A retrieval handle no longer (or never) points at a file"""

    status = 404

    def __init__(self, message: str = 'File expired or not found', details=None):
        super().__init__(message, details)
