"""
Domain layer for Relay.
"""
