"""Typed failures raised by the distributor.

Every failure leaves distributor state exactly as it was before the call,
except TransferPending, which keeps the claim it was raised for.
The classes are grouped by why the call was refused:

- InputRejected: the arguments are malformed.
- StateConflict: the call is well-formed but inapplicable right now.
- Unauthorized: the caller is not entitled to the requested effect.
- ResourceUnavailable: the distributor cannot currently fund the effect.

Capability failures (pause, re-entry, transfer) sit directly under
DistributorError because they come from collaborators, not from the
phase/claim rules.
"""

from __future__ import annotations

from typing import Optional


class DistributorError(Exception):
    """Base class for all distributor failures."""

    @property
    def code(self) -> str:
        return type(self).__name__


# ------------------------------------------------------------------
# Input rejection
# ------------------------------------------------------------------

class InputRejected(DistributorError):
    """Caller error: the arguments can never succeed as given."""


class ZeroAmount(InputRejected):
    """Per-claim amount must be positive."""


class AmountTooLarge(InputRejected):
    """Per-claim amount does not fit the configured unsigned width."""


class ArrayLengthMismatch(InputRejected):
    """Batch accounts and proofs differ in length."""


class ZeroAddress(InputRejected):
    """A required identity is the null address."""


class ZeroRecipient(ZeroAddress):
    """Withdrawal recipient is the null address."""


class InvalidAccount(InputRejected):
    """Identity is not a well-formed 20-byte address."""


class ExpiryNotInFuture(InputRejected):
    """Expiry must be strictly after the current network time."""


class TimestampTooLarge(InputRejected):
    """Expiry does not fit the configured unsigned timestamp width."""


class RegistryFull(InputRejected):
    """The phase registry has reached its maximum length."""


# ------------------------------------------------------------------
# State conflict
# ------------------------------------------------------------------

class StateConflict(DistributorError):
    """Well-formed call that does not apply to the current state."""


class InvalidPhase(StateConflict):
    """Phase index is out of range."""


class PhaseNotActive(StateConflict):
    """Phase has been deactivated or never activated."""


class ClaimingEnded(StateConflict):
    """Phase expiry has passed."""


class AlreadyClaimed(StateConflict):
    """Account has already redeemed in this phase."""


# ------------------------------------------------------------------
# Authorization
# ------------------------------------------------------------------

class Unauthorized(DistributorError):
    """Caller is not entitled to the requested effect."""


class InvalidProof(Unauthorized):
    """Membership proof does not reach the phase commitment."""


class NotOwner(Unauthorized):
    """Administrator-only operation called by another identity."""


# ------------------------------------------------------------------
# Resource
# ------------------------------------------------------------------

class ResourceUnavailable(DistributorError):
    """Retriable once the distributor is funded."""


class InsufficientBalance(ResourceUnavailable):
    """Distributor holdings cannot cover the requested payout."""


# ------------------------------------------------------------------
# Capabilities
# ------------------------------------------------------------------

class EnforcedPause(DistributorError):
    """Operation refused while the distributor is paused."""


class ExpectedPause(DistributorError):
    """Unpause requested while the distributor is not paused."""


class ReentrantCall(DistributorError):
    """A guarded operation was re-entered before it completed."""


class TransferFailed(DistributorError):
    """The asset ledger refused or failed a transfer."""


class TransferPending(DistributorError):
    """A transfer was broadcast but its outcome is not known.

    The claim that triggered it stays recorded: the funds may already
    have moved, and undoing the record could pay the account twice.
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
