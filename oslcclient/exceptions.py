##
## © Copyright 2021- IBM Inc. All rights reserved
# SPDX-License-Identifier: MIT
##

from . import utils


class OSLCError(Exception):
    """Base class for every error raised by oslcclient."""
    def __init__(self, message, *, status=None, body=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body

    def __str__(self):
        if self.status is not None:
            return f"{self.message} (status {self.status})"
        return self.message


class TransportError(OSLCError):
    """The request never produced an HTTP response: connection refused, DNS, TLS or timeout."""


class HttpError(OSLCError):
    """A final non-2xx response."""
    def __init__(self, message, response=None, *, status=None, body=None):
        if response is not None:
            status = response.status_code if status is None else status
            body = response.text if body is None else body
        super().__init__(message, status=status, body=body)
        self.response = response

    @property
    def headers(self):
        return {} if self.response is None else self.response.headers


class RequestFailedError(HttpError):
    """A query, create, update or delete got a status it does not accept."""


class UnauthorizedError(HttpError):
    """The link index refused the request for lack of authorization."""


class DiscoveryError(OSLCError):
    """A step of rootservices -> catalog -> provider -> capability failed."""
    def __init__(self, message, *, step, url=None, status=None, body=None):
        super().__init__(message, status=status, body=body)
        self.step = step
        self.url = url

    def __str__(self):
        text = f"{self.step}: {self.message}"
        if self.url:
            text += f" [{self.url}]"
        return text


class FormatError(OSLCError):
    """A response body that is none of the recognised result formats."""
    def __init__(self, message, *, content_type=None, body=None, status=None):
        super().__init__(message, status=status, body=utils.snippet(body))
        self.content_type = content_type

    def __str__(self):
        return f"{self.message} (content-type {self.content_type!r}): {self.body}"
