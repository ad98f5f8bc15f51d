"""Business tenant lookup."""

from .directory import (
    BusinessProfile,
    BusinessTone,
    InMemoryTenantDirectory,
    SqlTenantDirectory,
    TenantDirectory,
)

__all__ = [
    "BusinessProfile",
    "BusinessTone",
    "InMemoryTenantDirectory",
    "SqlTenantDirectory",
    "TenantDirectory",
]
