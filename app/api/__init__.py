"""
API routes package.
"""

from app.api import (
    admin,
    auth,
    company,
    dashboard,
    mandats,
    places,
    transporteur,
)

__all__ = [
    "admin",
    "auth",
    "company",
    "dashboard",
    "mandats",
    "places",
    "transporteur",
]
