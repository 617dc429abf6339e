"""Global suspend switch.

While paused, redemption entry points refuse with EnforcedPause before
any phase-level check runs. Administrative phase management is not
affected.
"""

from __future__ import annotations

from phasedrop.errors import EnforcedPause, ExpectedPause


class Pausable:
    def __init__(self, paused: bool = False) -> None:
        self._paused = paused

    @property
    def paused(self) -> bool:
        return self._paused

    def require_not_paused(self) -> None:
        if self._paused:
            raise EnforcedPause("Distributor is paused")

    def pause(self) -> None:
        self.require_not_paused()
        self._paused = True

    def unpause(self) -> None:
        if not self._paused:
            raise ExpectedPause("Distributor is not paused")
        self._paused = False
