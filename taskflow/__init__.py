"""TaskFlow: bounded-iteration agent orchestration over dependency-ordered task plans."""

__version__ = "0.3.0"
