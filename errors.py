# errors.py
from typing import Optional


class LinkError(Exception):
    """Base for every failure that is turned into an HTTP error response."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(LinkError):
    status_code = 400
    code = "bad_request"


class UpstreamError(LinkError):
    status_code = 502
    code = "upstream_error"


class Conflict(LinkError):
    status_code = 409
    code = "conflict"

    def __init__(self, message: str, existing_address: Optional[str] = None):
        super().__init__(message)
        self.existing_address = existing_address


class NotFound(LinkError):
    status_code = 404
    code = "not_found"


class StoreError(LinkError):
    status_code = 500
    code = "store_error"
