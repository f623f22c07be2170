"""
Jovika Kito v2.0 — FSM Package

Stage dispatch for one inbound message: onboarding, audio requests,
guided lessons and the open-ended fallback.
"""
from app.fsm.handlers import HANDLERS, TurnReply, handle_state

__all__ = ["HANDLERS", "TurnReply", "handle_state"]
