"""
Holder rewards engine: claim creator fees, evaluate holder loyalty, distribute a share to eligible holders.
"""

__version__ = "0.1.0"
