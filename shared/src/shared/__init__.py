"""
Shared utilities for the UBY realtime platform.
"""
