"""
VIN Decoder — Turns 17-character Vehicle Identification Numbers into vehicle data.

Architecture: Positional checks → WMI lookup → Schema/pattern resolution → Assembly
Philosophy:  Errors are data. A decode always returns a result.
"""

__version__ = "1.0.0"
