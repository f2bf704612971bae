"""Package entry point for the AudioCraft Studio web API."""

from .app import create_app, main

__all__ = ["create_app", "main"]
