"""CLI package for interacting with the sensmap service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# The Typer application lives in ``cli.app``; tests patch ``cli.app.ApiClient``,
# so the package root must not shadow that module with the Typer instance.

__all__ = []
