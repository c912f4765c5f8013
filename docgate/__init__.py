"""
docgate: delegated token exchange for the Atko document tools.
"""
__version__ = '1.0.0'
