"""
bayplanner - resource-constrained appointment scheduling for service bays.
"""

__version__ = "0.1.0"
