"""
Loan Servicing Engine

Deterministic loan amortization with Decimal precision, an administrator-driven
loan status state machine, and real-time status propagation to connected clients.
"""

__version__ = "1.0.0"
