"""Visibility verifier: wait until the read path reports a published version.

Each poll tries the structured lookup first and falls back to the raw
metadata document, which aggregating registries sometimes update before
their search/view index. Timing out is a warning: the write already
succeeded on the publish endpoint.
"""

from __future__ import annotations

from time import monotonic, sleep

from pinrel.core.config import VISIBILITY_POLL_INTERVAL
from pinrel.core.result import Ok
from pinrel.output.console import ConsoleProtocol
from pinrel.services.release.model import RegistryEndpoint
from pinrel.services.release.npm import RegistryReader


def is_visible(
    *,
    name: str,
    version: str,
    endpoint: RegistryEndpoint,
    reader: RegistryReader,
) -> bool:
    if reader.lookup(name, version, registry=endpoint.url):
        return True
    metadata = reader.fetch_metadata(name, registry=endpoint.url, token=endpoint.token)
    return isinstance(metadata, Ok) and f'"{version}"' in metadata.value


def await_visible(
    *,
    name: str,
    version: str,
    endpoint: RegistryEndpoint,
    reader: RegistryReader,
    timeout: float,
    console: ConsoleProtocol,
    interval: float = VISIBILITY_POLL_INTERVAL,
) -> bool:
    """Poll `endpoint` until name@version shows up or `timeout` seconds pass.

    The registry is always checked at least once, even with a zero timeout.
    Returns False on timeout, never raises for it.
    """
    label = f"{name}@{version}"
    deadline = monotonic() + timeout
    while True:
        if is_visible(name=name, version=version, endpoint=endpoint, reader=reader):
            console.success(f"{label} visible at {endpoint.url}")
            return True
        if monotonic() + interval > deadline:
            break
        sleep(interval)

    console.warning(f"{label} not visible at {endpoint.url} after {timeout:g}s; continuing")
    return False
