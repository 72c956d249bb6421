import logging
from typing import Dict, Set

from config import RenderOptions

logger = logging.getLogger(__name__)


class Scope:
    """Counter scopes used for diagram node identifiers."""

    VOICE_APP = "voiceApp"
    RESOURCE_ACCOUNT = "resourceAccount"
    TOP_LEVEL_NUMBER = "topLevelNumber"
    AUTO_ATTENDANT = "autoAttendant"
    AUTO_ATTENDANT_DEFAULT = "autoAttendantDefault"
    AUTO_ATTENDANT_AFTER_HOURS = "autoAttendantAfterHours"
    HOLIDAY = "holiday"
    CALL_QUEUE = "callQueue"


class IdAllocator:
    """Monotonic counters, one per named scope, starting at 1."""

    def __init__(self):
        self._counters: Dict[str, int] = {}

    def next(self, scope: str) -> int:
        value = self._counters.get(scope, 0) + 1
        self._counters[scope] = value
        return value


class RenderContext:
    """State of a single render, passed explicitly to every producer."""

    def __init__(self, options: RenderOptions):
        self.options = options
        self.ids = IdAllocator()

        # voice app id -> first node that represents it in the diagram
        self.voice_app_nodes: Dict[str, str] = {}
        # voice app id -> node its flow hangs off, for voice apps already drawn
        self.expanded: Dict[str, str] = {}
        # voice apps whose phone numbers already have start nodes
        self.numbered: Set[str] = set()

    def place_voice_app(self, voice_app_id: str, node_id: str) -> str:
        """Records where a voice app first appears and returns that node id."""
        if voice_app_id not in self.voice_app_nodes:
            logger.debug(f"Voice app {voice_app_id} placed at node {node_id}")
            self.voice_app_nodes[voice_app_id] = node_id
        return self.voice_app_nodes[voice_app_id]

    def mark_expanded(self, voice_app_id: str, node_id: str):
        self.expanded[voice_app_id] = node_id

    def reference_node(self, voice_app_id: str) -> str:
        """Node an 'Already Shown' edge for a voice app should point at."""
        return self.expanded.get(voice_app_id) or self.voice_app_nodes[voice_app_id]
