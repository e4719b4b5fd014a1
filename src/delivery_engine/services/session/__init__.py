"""Checkout fee session."""

from .fee_session import FeeSession
from .state import SessionSnapshot, SessionState, reduce

__all__ = ["FeeSession", "SessionSnapshot", "SessionState", "reduce"]
