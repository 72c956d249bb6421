import logging
from typing import List, NamedTuple, Optional

from pydantic import BaseModel

from branch_resolver import BranchResolver, greeting_label
from context import RenderContext, Scope
from diagram import ExpansionOrigin, Fragment, PlacedTarget
from models import (
    AgentListKind,
    CallQueueConfig,
    CallTarget,
    GreetingKind,
    NodeShape,
    QueueAction,
    UnknownTarget,
    UserTarget,
)
from utils import generate_admin_center_link

logger = logging.getLogger(__name__)

AGENT_LIST_LABELS = {
    AgentListKind.USERS: "Users",
    AgentListKind.GROUP: "Group",
    AgentListKind.TEAMS_CHANNEL: "Teams Channel",
}


class QueueEntry(BaseModel):
    node_id: str  # predecessor of the queue's first node
    origin: ExpansionOrigin


class QueueFlow(NamedTuple):
    fragment: Fragment
    targets: List[PlacedTarget]
    number: int


def outcome_identity(action: QueueAction, target: Optional[CallTarget]) -> Optional[str]:
    """Key under which two queue outcomes count as the same destination."""
    if target is None or action in (QueueAction.DISCONNECT, QueueAction.UNKNOWN):
        return None
    return f"{action.value}:{target.identity}"


def _on_off(value: bool) -> str:
    return "On" if value else "Off"


class QueueFlowBuilder:
    def __init__(self, ctx: RenderContext, resolver: BranchResolver):
        self.ctx = ctx
        self.resolver = resolver

    def _place_outcome(
        self,
        fragment: Fragment,
        node_id: str,
        action: QueueAction,
        target: Optional[CallTarget],
    ) -> Optional[CallTarget]:
        if action == QueueAction.DISCONNECT:
            fragment.node(node_id, "Disconnect Call", NodeShape.DOUBLE_CIRCLE)
            return None

        if action == QueueAction.UNKNOWN:
            fragment.node(node_id, "Unknown Action", NodeShape.ROUNDED)
            return None

        if target is None:
            target = UnknownTarget(id="", reason="No Target Configured")

        if action == QueueAction.VOICEMAIL and isinstance(target, UserTarget):
            fragment.node(node_id, ["Personal Voicemail", target.display_name])
            return target

        self.resolver.place_target(fragment, node_id, target)
        return target

    def build(self, config: CallQueueConfig, entry: QueueEntry) -> QueueFlow:
        s = config.settings
        n = self.ctx.ids.next(Scope.CALL_QUEUE)
        fragment = Fragment()
        targets: List[PlacedTarget] = []

        logger.debug(
            f"Building call queue {config.voice_app.name} as #{n} "
            f"(entered from {entry.node_id}, origin {entry.origin.value})"
        )

        predecessor = entry.node_id
        if s.greeting.kind != GreetingKind.NONE:
            greeting_id = fragment.node(
                f"cqGreeting{n}", greeting_label(s.greeting), NodeShape.SUBROUTINE
            )
            fragment.edge(predecessor, greeting_id)
            predecessor = greeting_id

        overflow_check = fragment.node(
            f"cqOverflowCheck{n}",
            [f"More than {s.overflow_threshold}", "Active Calls"],
            NodeShape.RHOMBUS,
        )
        fragment.edge(predecessor, overflow_check)

        # Decide on sharing before any target id is handed out
        overflow_key = outcome_identity(s.overflow_action, s.overflow_target)
        shared = overflow_key is not None and overflow_key == outcome_identity(
            s.timeout_action, s.timeout_target
        )
        timeout_target_id = f"cqTimeoutTarget{n}"
        overflow_target_id = timeout_target_id if shared else f"cqOverflowTarget{n}"

        if shared:
            logger.debug(f"Queue #{n}: overflow and timeout share {overflow_key}")
            target = self._place_outcome(
                fragment, timeout_target_id, s.timeout_action, s.timeout_target
            )
            targets.append(
                PlacedTarget(
                    node_id=timeout_target_id,
                    target=target,
                    origin=ExpansionOrigin.TIMEOUT,
                )
            )
        else:
            target = self._place_outcome(
                fragment, overflow_target_id, s.overflow_action, s.overflow_target
            )
            if target is not None:
                targets.append(
                    PlacedTarget(
                        node_id=overflow_target_id,
                        target=target,
                        origin=ExpansionOrigin.OVERFLOW,
                    )
                )
        fragment.edge(overflow_check, overflow_target_id, "Yes")

        distribution = fragment.subgraph(f"cqDistribution{n}", "Call Distribution")

        settings_group = distribution.subgraph(
            f"cqSettings{n}", "Queue Settings", direction="LR"
        )
        rows = [
            ("cqRouting", f"Routing Method: {s.routing_method}"),
            ("cqAlertTime", f"Agent Alert Time: {s.agent_alert_time} Seconds"),
            ("cqMusicOnHold", f"Music On Hold: {s.music_on_hold.value}"),
            ("cqConferenceMode", f"Conference Mode: {_on_off(s.conference_mode_enabled)}"),
            ("cqOptOut", f"Agent Opt Out Allowed: {_on_off(s.agent_opt_out_allowed)}"),
            (
                "cqPresence",
                f"Presence Based Routing: {_on_off(s.presence_based_routing)}",
            ),
            ("cqTimeoutSetting", f"Timeout: {s.timeout_threshold} Seconds"),
        ]
        first_row = last_row = None
        for prefix, text in rows:
            row_id = settings_group.node(f"{prefix}{n}", text, NodeShape.CYLINDER)
            if last_row:
                settings_group.edge(last_row, row_id)
            first_row = first_row or row_id
            last_row = row_id

        agents_group = distribution.subgraph(f"cqAgents{n}", "Agents")
        agent_list = agents_group.node(
            f"cqAgentList{n}",
            ["Agent List Type", AGENT_LIST_LABELS[s.agent_list_kind]] + s.agent_list_names,
            NodeShape.ROUNDED,
        )
        agent_ids = []
        for i, agent in enumerate(s.agents, start=1):
            label = [agent.display_name]
            if not agent.opt_in:
                label.append("Opted Out")
            link = None
            if self.ctx.options.show_admin_links:
                link = generate_admin_center_link("user", agent.id)
            agent_id = agents_group.node(f"cqAgent{n}_{i}", label, link=link)
            agents_group.edge(agent_list, agent_id)
            agent_ids.append(agent_id)

        fragment.edge(overflow_check, first_row, "No")
        fragment.edge(last_row, agent_list)

        timeout_id = fragment.node(f"cqTimeout{n}", "Timeout", NodeShape.ROUNDED)
        for agent_id in agent_ids or [agent_list]:
            fragment.edge(agent_id, timeout_id)

        connected_check = fragment.node(
            f"cqCallConnected{n}", "Call Connected?", NodeShape.RHOMBUS
        )
        fragment.edge(timeout_id, connected_check)
        connected = fragment.node(
            f"cqConnected{n}", "Call Connected", NodeShape.DOUBLE_CIRCLE
        )
        fragment.edge(connected_check, connected, "Yes")

        if not shared:
            target = self._place_outcome(
                fragment, timeout_target_id, s.timeout_action, s.timeout_target
            )
            if target is not None:
                targets.append(
                    PlacedTarget(
                        node_id=timeout_target_id,
                        target=target,
                        origin=ExpansionOrigin.TIMEOUT,
                    )
                )
        fragment.edge(connected_check, timeout_target_id, "No")

        return QueueFlow(fragment=fragment, targets=targets, number=n)
