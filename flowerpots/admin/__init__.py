"""Admin-only operations: catalog management and user administration.

Every route using these is gated by `flowerpots.auth.deps.require_admin`.
"""
