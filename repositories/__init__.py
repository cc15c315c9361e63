"""Persistence: the MarketplaceStore port and its adapters."""
