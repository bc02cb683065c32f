"""
Private Treasury withdrawal pipeline.

Reads the deposit ledger, finds deposits owned by a secret, rebuilds the
accumulator, proves membership and ownership, verifies the proof locally and
only then submits the withdrawal.
"""

__version__ = "0.1.0"
