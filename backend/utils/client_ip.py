"""
Client IP extraction for logging and audit events.
"""

from fastapi import Request


def get_client_ip(request: Request) -> str:
    """
    Get the peer address of the request.

    The agent is meant to be reached directly (optionally over TLS), so
    forwarding headers are not trusted.

    Returns:
        Client IP address as string, "unknown" if the transport has none
    """
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
