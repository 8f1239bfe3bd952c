"""
HTTP and WebSocket API for Relay.
"""
