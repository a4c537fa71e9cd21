"""Runtime wiring."""

from .app import Application, build_application, build_orchestrator

__all__ = ["Application", "build_application", "build_orchestrator"]
