"""
Dependency injection for Relay.
"""

from relay.di.container import Container

__all__ = ["Container"]
