"""Promotion engine: plan tag operations from a manifest and apply them.

Reads the destination inventory into a SyncContext, reconciles it against
the manifest, and runs the resulting requests on a worker pool.
"""
