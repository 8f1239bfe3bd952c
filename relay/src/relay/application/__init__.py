"""
Application layer for Relay.
"""
