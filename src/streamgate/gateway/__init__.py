"""
Gateway server: the FastAPI application that hosts the tunnel endpoint,
the upgrade gatekeeper and the decoy/status endpoints.
"""
