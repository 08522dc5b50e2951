"""
Appointment availability and booking slot engine.
"""

__version__ = "0.1.0"
