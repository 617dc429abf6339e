"""Capability checks — ownership, pause switch, re-entry guard."""

from phasedrop.access.ownable import Ownable
from phasedrop.access.pausable import Pausable
from phasedrop.access.reentrancy import NonReentrant

__all__ = ["NonReentrant", "Ownable", "Pausable"]
