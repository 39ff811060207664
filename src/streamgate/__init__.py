"""
StreamGate - WebSocket-carried TCP tunneling gateway.
"""

__version__ = "0.1.0"
