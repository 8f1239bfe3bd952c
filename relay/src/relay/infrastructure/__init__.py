"""
Infrastructure layer for Relay.
"""
