"""
Slot reservation core: ledger, engine, cancellation tokens, reschedule.

Import the submodules directly (``from reservations import engine``).
"""
