"""
External Collaborators
======================

Adapters for the outside world the engine talks to: the HTTP transport and
the platform clipboard.
"""
