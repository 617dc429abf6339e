"""External asset ledgers the distributor pays out of."""

from phasedrop.assets.ledger import AssetLedger, InMemoryAssetLedger

__all__ = ["AssetLedger", "InMemoryAssetLedger"]
