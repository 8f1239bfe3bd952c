"""
Data transfer objects for Relay.
"""

from relay.application.dto.message_dto import AuthenticatePayload, InboundMessage

__all__ = ["AuthenticatePayload", "InboundMessage"]
