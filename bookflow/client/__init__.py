from bookflow.client.api import BookingAPIClient
from bookflow.client.presentation import ConfirmationView, render_confirmation
from bookflow.client.role_cache import CachedRole, RoleCache
from bookflow.client.verification import VerificationHandle, VerificationResult, verify_reservation
from bookflow.client.workflow import BookingState, BookingWorkflow, CardConfirmer, DepositCollector

__all__ = [
    "BookingAPIClient",
    "BookingState",
    "BookingWorkflow",
    "CachedRole",
    "CardConfirmer",
    "ConfirmationView",
    "DepositCollector",
    "RoleCache",
    "VerificationHandle",
    "VerificationResult",
    "render_confirmation",
    "verify_reservation",
]
