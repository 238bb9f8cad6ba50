"""Live price plumbing: the single-slot store, the external sources that feed
it, the fetch loop, and the Socket.IO broadcaster that reads it back out.
"""
