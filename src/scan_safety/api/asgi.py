"""ASGI entrypoint for the scan safety API."""

from scan_safety.api.app import create_app
from scan_safety.containers import build_container

app = create_app(build_container())
