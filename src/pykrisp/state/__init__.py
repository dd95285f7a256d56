"""State/cache layer.

This package is the single source of truth for how server-pushed
snapshots are normalised, compared with what is already cached, and
turned into change notifications. It knows nothing about sockets.
"""
