"""
Mirror template domain exceptions

Each failure carries a machine-readable ``code`` so the HTTP layer can map it
to a distinct status and error type.
"""

from typing import Optional

from .base import DomainException


class MirrorFailure(DomainException):
    """Base class for mirror pipeline failures"""


class LearnFailure(MirrorFailure):
    """Uploaded document could not be read or parsed"""

    def __init__(self, message: str = "Failed to learn layout", detail: Optional[str] = None):
        super().__init__(
            message=message,
            code="LEARN_FAILURE",
            details={"detail": detail} if detail else {}
        )
        self.detail = detail


class ValidationFailure(MirrorFailure):
    """Malformed confirm/apply/download payload"""

    def __init__(self, message: str, field: Optional[str] = None, details: dict = None):
        payload = dict(details or {})
        if field:
            payload["field"] = field
        super().__init__(message=message, code="VALIDATION_FAILURE", details=payload)
        self.field = field


class NotFoundFailure(MirrorFailure):
    """Referenced definition or output file does not exist"""

    def __init__(self, message: str, resource: str = "template", identifier: Optional[str] = None):
        details = {"resource": resource}
        if identifier is not None:
            details["id"] = identifier
        super().__init__(message=message, code="NOT_FOUND", details=details)
        self.resource = resource
        self.identifier = identifier


class StoreFailure(MirrorFailure):
    """Durable definition store unavailable or write failed"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(
            message=f"Definition store error: {message}",
            code="STORE_FAILURE",
            details={"operation": operation} if operation else {}
        )
        self.operation = operation


class RenderFailure(MirrorFailure):
    """Output workbook could not be generated"""

    def __init__(self, message: str, definition_id: Optional[str] = None):
        super().__init__(
            message=f"Render failed: {message}",
            code="RENDER_FAILURE",
            details={"id": definition_id} if definition_id else {}
        )
