"""
Workshop booking - slot allocation for a weekly clay workshop.
"""

__version__ = "0.1.0"
