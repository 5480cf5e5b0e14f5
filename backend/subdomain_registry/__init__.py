"""
Multi-tenant subdomain registry and access-control engine.
"""

__version__ = "1.0.0"
