"""
cmip6_pxn

Extreme-precipitation and ENSO index diagnostics for CMIP6 ensembles.
"""

__version__ = "0.1.0"
