"""
Change watching: events, sources and the supervised notifier.
"""

from .events import ChangeEvent, is_relevant_change, views_for_event
from .sources import (
    ChangeSource,
    PostgresChangeSource,
    SessionChangeSource,
    create_change_source,
)
from .change_notifier import ChangeNotifier, NotifierStatus

__all__ = [
    "ChangeEvent",
    "is_relevant_change",
    "views_for_event",
    "ChangeSource",
    "PostgresChangeSource",
    "SessionChangeSource",
    "create_change_source",
    "ChangeNotifier",
    "NotifierStatus",
]
