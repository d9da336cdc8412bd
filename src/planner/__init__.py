"""
Planner

Recurring-event scheduling and reminder dispatch for group event planning.
"""
__version__ = "0.1.0"
