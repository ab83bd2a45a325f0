"""
Events Module - Black Box Interface

Purpose: Record operator-visible events per deployment
Interface: EventRecorder.record(), normal(), warning(), list_events()
Hidden: Capped Redis lists, retention

Recording never fails the caller; a lost event is only logged.
"""

from .recorder import EVENT_NORMAL, EVENT_WARNING, EventRecorder

__all__ = ["EventRecorder", "EVENT_NORMAL", "EVENT_WARNING"]
