"""
Relay - realtime sync hub for UBY clients.
"""

__version__ = "2.0.0"
