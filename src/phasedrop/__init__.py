"""phasedrop — phased, proof-gated distribution of a fungible asset."""

__version__ = "0.1.0"

from phasedrop.distributor import MerkleDistributor
from phasedrop.errors import DistributorError
from phasedrop.models.phase import BatchOutcome, Phase, PhaseStatus

__all__ = [
    "BatchOutcome",
    "DistributorError",
    "MerkleDistributor",
    "Phase",
    "PhaseStatus",
]
