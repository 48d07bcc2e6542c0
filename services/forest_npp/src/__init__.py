"""
Forest NPP Report Service

Normalizes annual Net Primary Production per national forest,
derives change metrics, and renders the trend report.
"""

__version__ = "0.1.0"
