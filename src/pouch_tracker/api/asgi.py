"""ASGI entrypoint for the pouch tracker API."""

from pouch_tracker.api.app import create_app
from pouch_tracker.containers import build_container

app = create_app(build_container())
