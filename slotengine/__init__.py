"""
slotengine - availability calculation for appointment booking pages.
"""

__version__ = "0.1.0"
