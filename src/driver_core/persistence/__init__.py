"""Backing-store adapters."""

from .deliveries import SupabaseDeliveryStore
from .remittances import SupabaseCommissionRateLookup, SupabaseRemittanceStore

__all__ = ["SupabaseDeliveryStore", "SupabaseRemittanceStore", "SupabaseCommissionRateLookup"]
