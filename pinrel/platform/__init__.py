"""Platform abstraction layer: processes, files, HTTP."""

from .files import atomic_write_json, atomic_write_text
from .http import HttpClient, HttpError, MockHttpClient, RealHttpClient, auth_headers
from .process import ProcessError, run

__all__ = [
    # files
    "atomic_write_json",
    "atomic_write_text",
    # http
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    "auth_headers",
    # process
    "ProcessError",
    "run",
]
