"""
Presentation layer for Relay.
"""
