import logging
from typing import List, Optional, Tuple

from context import RenderContext, Scope
from diagram import ExpansionOrigin, Fragment, PlacedTarget
from models import (
    FULL_DAY,
    WEEKDAYS,
    ApplicationEndpointTarget,
    AutoAttendantConfig,
    CallFlow,
    CallFlowAction,
    CallTarget,
    DateRange,
    ExternalPstnTarget,
    Greeting,
    GreetingKind,
    NodeShape,
    Schedule,
    SharedVoicemailTarget,
    UnknownTarget,
    UserTarget,
    VoiceApp,
    VoiceAppKind,
)
from utils import format_time_of_day, generate_admin_center_link

logger = logging.getLogger(__name__)


def has_after_hours(config: AutoAttendantConfig) -> bool:
    """An auto attendant has after hours unless its business hours never close."""
    after_hours = config.after_hours_flow()
    if after_hours is None:
        return False
    schedule, _ = after_hours
    return not schedule.is_always_open


def business_hours_lines(schedule: Schedule) -> List[str]:
    lines = []
    for day in WEEKDAYS:
        intervals = schedule.weekly_recurrence.get(day, [])
        if intervals == [FULL_DAY]:
            text = "Open 24 hours"
        elif intervals:
            text = ", ".join(
                f"{format_time_of_day(i.start)} - {format_time_of_day(i.end)}"
                for i in intervals
            )
        else:
            text = "Closed"
        lines.append(f"{day}: {text}")
    return lines + time_zone_lines(schedule)


def time_zone_lines(schedule: Schedule) -> List[str]:
    return [f"Time Zone: {schedule.time_zone}"] if schedule.time_zone else []


def date_range_text(date_range: DateRange) -> str:
    return f"{date_range.start:%Y-%m-%d %H:%M} - {date_range.end:%Y-%m-%d %H:%M}"


def greeting_label(greeting: Greeting, title: str = "Greeting") -> List[str]:
    if greeting.kind == GreetingKind.NONE:
        return [title, "None"]
    lines = [title, greeting.kind.value]
    if greeting.text:
        lines.append(greeting.text)
    return lines


def target_label(target: CallTarget) -> Tuple[List[str], NodeShape]:
    if isinstance(target, UserTarget):
        return ["User", target.display_name], NodeShape.ROUNDED

    if isinstance(target, ExternalPstnTarget):
        return ["External Number", target.number], NodeShape.ROUNDED

    if isinstance(target, SharedVoicemailTarget):
        lines = ["Shared Voicemail", target.group_name]
        if target.greeting_kind != GreetingKind.NONE:
            lines.append(f"Greeting: {target.greeting_kind.value}")
        if target.transcription:
            lines.append("Transcription: Enabled")
        return lines, NodeShape.ROUNDED

    if isinstance(target, ApplicationEndpointTarget):
        return [target.voice_app.kind_label, target.voice_app.name], NodeShape.RECTANGLE

    lines = [target.reason]
    if target.id:
        lines.append(target.id)
    return lines, NodeShape.ROUNDED


def voice_app_link(voice_app: VoiceApp) -> str:
    if voice_app.kind == VoiceAppKind.AUTO_ATTENDANT:
        return generate_admin_center_link("auto_attendant", voice_app.id)
    return generate_admin_center_link("call_queue", voice_app.id)


class BranchResolver:
    """Turns call flows and call targets into diagram nodes.

    Handles the greeting/action/target chain of a single call flow and the
    holiday and business hours gate in front of an auto attendant's flows.
    """

    def __init__(self, ctx: RenderContext):
        self.ctx = ctx

    def place_target(self, fragment: Fragment, node_id: str, target: CallTarget) -> str:
        label, shape = target_label(target)

        link = None
        if self.ctx.options.show_admin_links:
            if isinstance(target, UserTarget):
                link = generate_admin_center_link("user", target.id)
            elif isinstance(target, ApplicationEndpointTarget):
                link = voice_app_link(target.voice_app)

        fragment.node(node_id, label, shape, link=link)
        if isinstance(target, ApplicationEndpointTarget):
            self.ctx.place_voice_app(target.voice_app.id, node_id)
        return node_id

    def _resolve_action(
        self,
        fragment: Fragment,
        predecessor: str,
        edge_label: Optional[str],
        action: CallFlowAction,
        target: Optional[CallTarget],
        action_id: str,
        target_id: str,
        origin: ExpansionOrigin,
        operator: Optional[CallTarget],
    ) -> List[PlacedTarget]:
        if action == CallFlowAction.DISCONNECT:
            fragment.node(action_id, "Disconnect Call", NodeShape.DOUBLE_CIRCLE)
            fragment.edge(predecessor, action_id, edge_label)
            return []

        if action == CallFlowAction.ANNOUNCEMENT:
            fragment.node(action_id, "Play Announcement", NodeShape.ROUNDED)
            fragment.edge(predecessor, action_id, edge_label)
            return []

        if action == CallFlowAction.TRANSFER_TO_OPERATOR:
            label = "Transfer Call To Operator"
            target = operator or UnknownTarget(id="", reason="No Operator Configured")
        elif action == CallFlowAction.TRANSFER_TO_TARGET:
            label = "Transfer Call To Target"
            target = target or UnknownTarget(id="", reason="No Target Configured")
        else:
            logger.warning(f"Unknown call flow action at {action_id}")
            fragment.node(action_id, "Unknown Action", NodeShape.ROUNDED)
            fragment.edge(predecessor, action_id, edge_label)
            return []

        fragment.node(action_id, label, NodeShape.ROUNDED)
        fragment.edge(predecessor, action_id, edge_label)
        self.place_target(fragment, target_id, target)
        fragment.edge(action_id, target_id)
        return [PlacedTarget(node_id=target_id, target=target, origin=origin)]

    def resolve_call_flow(
        self,
        fragment: Fragment,
        call_flow: CallFlow,
        predecessor: str,
        edge_label: Optional[str],
        prefix: str,
        number: int,
        origin: ExpansionOrigin,
        operator: Optional[CallTarget] = None,
    ) -> List[PlacedTarget]:
        """Emits Greeting --> Action --> Target for one call flow."""
        greeting_id = fragment.node(
            f"{prefix}Greeting{number}",
            greeting_label(call_flow.greeting),
            NodeShape.SUBROUTINE,
        )
        fragment.edge(predecessor, greeting_id, edge_label)

        if call_flow.action != CallFlowAction.MENU:
            return self._resolve_action(
                fragment,
                greeting_id,
                None,
                call_flow.action,
                call_flow.target,
                f"{prefix}Action{number}",
                f"{prefix}Target{number}",
                origin,
                operator,
            )

        menu_entry = greeting_id
        if call_flow.menu_prompt.kind != GreetingKind.NONE:
            menu_entry = fragment.node(
                f"{prefix}MenuPrompt{number}",
                greeting_label(call_flow.menu_prompt, title="Menu Prompt"),
                NodeShape.SUBROUTINE,
            )
            fragment.edge(greeting_id, menu_entry)

        menu_id = fragment.node(f"{prefix}Menu{number}", "Menu Options", NodeShape.RHOMBUS)
        fragment.edge(menu_entry, menu_id)

        placed = []
        for i, option in enumerate(call_flow.menu_options, start=1):
            option_label = f"Press {option.key}"
            if option.voice_responses:
                option_label += f" or say {', '.join(option.voice_responses)}"
            placed += self._resolve_action(
                fragment,
                menu_id,
                option_label,
                option.action,
                option.target,
                f"{prefix}Option{number}_{i}",
                f"{prefix}OptionTarget{number}_{i}",
                origin,
                operator,
            )
        return placed

    def resolve_auto_attendant(
        self, config: AutoAttendantConfig, voice_app_node: str
    ) -> Tuple[Fragment, List[PlacedTarget]]:
        """Builds the holiday/business hours gate and every call flow behind it."""
        ids = self.ctx.ids
        fragment = Fragment()
        placed: List[PlacedTarget] = []

        holidays = config.holiday_flows()
        after_hours = config.after_hours_flow() if has_after_hours(config) else None
        logger.debug(
            f"Auto attendant {config.voice_app.name}: {len(holidays)} holidays, "
            f"after hours {'configured' if after_hours else 'not configured'}"
        )

        gate = ids.next(Scope.AUTO_ATTENDANT) if (holidays or after_hours) else 0
        entry, entry_label = voice_app_node, None

        holiday_check = None
        if holidays:
            holiday_check = fragment.node(
                f"holidayCheck{gate}", "During Holiday?", NodeShape.RHOMBUS
            )
            fragment.edge(entry, holiday_check)
            entry, entry_label = holiday_check, "No"

        business_hours_check = None
        if after_hours:
            schedule, _ = after_hours
            business_hours_check = fragment.node(
                f"businessHoursCheck{gate}",
                ["During Business Hours?"] + business_hours_lines(schedule),
                NodeShape.RHOMBUS,
            )
            fragment.edge(entry, business_hours_check, entry_label)
            entry, entry_label = business_hours_check, "Yes"

        placed += self.resolve_call_flow(
            fragment,
            config.default_call_flow,
            entry,
            entry_label,
            "aaDefault",
            ids.next(Scope.AUTO_ATTENDANT_DEFAULT),
            ExpansionOrigin.DEFAULT,
            config.operator,
        )

        if after_hours:
            _, after_hours_flow = after_hours
            placed += self.resolve_call_flow(
                fragment,
                after_hours_flow,
                business_hours_check,
                "No",
                "aaAfterHours",
                ids.next(Scope.AUTO_ATTENDANT_AFTER_HOURS),
                ExpansionOrigin.AFTER_HOURS,
                config.operator,
            )

        if holidays:
            group_id = f"holidays{gate}"
            group = fragment.subgraph(group_id, "Holidays", direction="LR")
            for schedule, holiday_flow in holidays:
                k = ids.next(Scope.HOLIDAY)
                holiday = group.subgraph(f"holiday{k}", schedule.name or f"Holiday {k}")
                schedule_id = holiday.node(
                    f"holidaySchedule{k}",
                    ["Schedule"]
                    + [date_range_text(r) for r in schedule.date_ranges]
                    + time_zone_lines(schedule),
                    NodeShape.ROUNDED,
                )
                placed += self.resolve_call_flow(
                    holiday,
                    holiday_flow,
                    schedule_id,
                    None,
                    "holiday",
                    k,
                    ExpansionOrigin.HOLIDAY,
                    config.operator,
                )
            fragment.edge(holiday_check, group_id, "Yes")

        return fragment, placed
