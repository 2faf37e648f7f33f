"""Listing core for the CampusElectronics student marketplace."""

__all__ = [
    "config",
    "models",
    "images",
    "camera",
    "enrichment",
    "draft",
    "feed",
    "session",
    "sell_flow",
    "cli",
]
