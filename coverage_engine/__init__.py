"""
Coverage Engine.

Multi-layer insurance coverage calculation and idempotent bulk tariff
provisioning.
"""

__version__ = "1.0.0"
