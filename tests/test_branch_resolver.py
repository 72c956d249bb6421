from datetime import datetime, timedelta

from branch_resolver import (
    BranchResolver,
    business_hours_lines,
    has_after_hours,
    target_label,
)
from config import RenderOptions
from context import IdAllocator, RenderContext, Scope
from factories import find_node
from models import (
    FULL_DAY,
    WEEKDAYS,
    ApplicationEndpointTarget,
    AutoAttendantConfig,
    CallFlow,
    CallFlowAction,
    CallHandling,
    CallHandlingKind,
    DateRange,
    DiagramEdge,
    ExternalPstnTarget,
    Greeting,
    GreetingKind,
    MenuOption,
    NodeShape,
    Schedule,
    ScheduleKind,
    Subgraph,
    TimeInterval,
    UnknownTarget,
    VoiceApp,
    VoiceAppKind,
)

MAIN = VoiceApp(kind=VoiceAppKind.AUTO_ATTENDANT, id="aa-main", name="Main")
SALES = VoiceApp(kind=VoiceAppKind.CALL_QUEUE, id="cq-sales", name="Sales")

OFFICE_HOURS = Schedule(
    kind=ScheduleKind.BUSINESS_HOURS,
    id="sched-office",
    weekly_recurrence={
        day: [TimeInterval(start=timedelta(hours=9), end=timedelta(hours=17))]
        for day in WEEKDAYS[:5]
    },
)

ALWAYS_OPEN = Schedule(
    kind=ScheduleKind.BUSINESS_HOURS,
    id="sched-24h",
    weekly_recurrence={day: [FULL_DAY] for day in WEEKDAYS},
    complement_enabled=True,
)

CHRISTMAS = Schedule(
    kind=ScheduleKind.HOLIDAY,
    id="sched-xmas",
    name="Christmas",
    date_ranges=[DateRange(start=datetime(2024, 12, 25), end=datetime(2024, 12, 26))],
)


def transfer(flow_id, target, greeting="Welcome"):
    return CallFlow(
        id=flow_id,
        greeting=Greeting(kind=GreetingKind.TEXT_TO_SPEECH, text=greeting),
        action=CallFlowAction.TRANSFER_TO_TARGET,
        target=target,
    )


def aa_config(default_flow, call_flows=(), schedules=(), handlings=(), operator=None):
    return AutoAttendantConfig(
        voice_app=MAIN,
        default_call_flow=default_flow,
        call_flows=list(call_flows),
        schedules=list(schedules),
        call_handlings=list(handlings),
        operator=operator,
    )


def resolver(**options):
    return BranchResolver(RenderContext(RenderOptions(**options)))


def test_allocator_scopes_are_independent():
    ids = IdAllocator()
    assert ids.next(Scope.CALL_QUEUE) == 1
    assert ids.next(Scope.CALL_QUEUE) == 2
    assert ids.next(Scope.HOLIDAY) == 1
    assert ids.next(Scope.CALL_QUEUE) == 3
    assert ids.next(Scope.VOICE_APP) == 1


def test_has_after_hours():
    closed_flow = CallFlow(id="cf-closed", action=CallFlowAction.DISCONNECT)
    default = transfer("cf-default", ExternalPstnTarget(number="+1555123456"))

    def config(schedule):
        return aa_config(
            default,
            [closed_flow],
            [schedule],
            [
                CallHandling(
                    kind=CallHandlingKind.AFTER_HOURS,
                    schedule_id=schedule.id,
                    call_flow_id="cf-closed",
                )
            ],
        )

    assert has_after_hours(config(OFFICE_HOURS)) is True
    assert has_after_hours(config(ALWAYS_OPEN)) is False
    assert has_after_hours(aa_config(default)) is False


def test_business_hours_lines():
    lines = business_hours_lines(OFFICE_HOURS)
    assert lines[0] == "Monday: 09:00 - 17:00"
    assert lines[-1] == "Sunday: Closed"
    assert business_hours_lines(ALWAYS_OPEN)[2] == "Wednesday: Open 24 hours"


def test_target_labels():
    assert target_label(ExternalPstnTarget(number="+1555123456")) == (
        ["External Number", "+1555123456"],
        NodeShape.ROUNDED,
    )
    endpoint = ApplicationEndpointTarget(id="ra-sales", voice_app=SALES)
    assert target_label(endpoint) == (["Call Queue", "Sales"], NodeShape.RECTANGLE)
    assert target_label(UnknownTarget(id=""))[0] == ["Unknown Target"]


def test_gate_omitted_without_holidays_or_after_hours():
    r = resolver()
    config = aa_config(transfer("cf-default", ExternalPstnTarget(number="+1555123456")))

    fragment, placed = r.resolve_auto_attendant(config, "voiceApp1")

    ids = [n.id for n in fragment.nodes()]
    assert ids == ["aaDefaultGreeting1", "aaDefaultAction1", "aaDefaultTarget1"]
    assert all(n.shape != NodeShape.RHOMBUS for n in fragment.nodes())
    assert fragment.elements[1] == DiagramEdge(source="voiceApp1", target="aaDefaultGreeting1")
    assert len(placed) == 1
    assert placed[0].node_id == "aaDefaultTarget1"


def test_after_hours_and_holidays():
    r = resolver()
    sales = ApplicationEndpointTarget(id="ra-sales", voice_app=SALES)
    config = aa_config(
        transfer("cf-default", sales),
        [
            CallFlow(id="cf-closed", action=CallFlowAction.DISCONNECT),
            CallFlow(id="cf-xmas", action=CallFlowAction.ANNOUNCEMENT),
        ],
        [OFFICE_HOURS, CHRISTMAS],
        [
            CallHandling(
                kind=CallHandlingKind.AFTER_HOURS,
                schedule_id="sched-office",
                call_flow_id="cf-closed",
            ),
            CallHandling(
                kind=CallHandlingKind.HOLIDAY,
                schedule_id="sched-xmas",
                call_flow_id="cf-xmas",
            ),
        ],
    )

    fragment, placed = r.resolve_auto_attendant(config, "voiceApp1")
    edges = fragment.edges()

    assert DiagramEdge(source="voiceApp1", target="holidayCheck1") in edges
    assert DiagramEdge(source="holidayCheck1", target="businessHoursCheck1", label="No") in edges
    assert (
        DiagramEdge(source="businessHoursCheck1", target="aaDefaultGreeting1", label="Yes")
        in edges
    )
    assert (
        DiagramEdge(source="businessHoursCheck1", target="aaAfterHoursGreeting1", label="No")
        in edges
    )
    # The holiday edge comes after the subgraph it points at
    assert fragment.elements[-1] == DiagramEdge(
        source="holidayCheck1", target="holidays1", label="Yes"
    )

    holidays = fragment.elements[-2]
    assert isinstance(holidays, Subgraph)
    assert holidays.direction == "LR"
    holiday = holidays.elements[0]
    assert holiday.id == "holiday1"
    assert holiday.title == "Christmas"

    assert find_node(fragment, "aaAfterHoursAction1").shape == NodeShape.DOUBLE_CIRCLE
    assert find_node(fragment, "holidayAction1").label == ["Play Announcement"]
    assert r.ctx.voice_app_nodes == {"cq-sales": "aaDefaultTarget1"}
    assert [p.node_id for p in placed] == ["aaDefaultTarget1"]


def test_holidays_without_after_hours():
    r = resolver()
    christmas = CHRISTMAS.model_copy(update={"time_zone": "Pacific Standard Time"})
    config = aa_config(
        transfer("cf-default", ExternalPstnTarget(number="+1555123456")),
        [CallFlow(id="cf-xmas", action=CallFlowAction.ANNOUNCEMENT)],
        [christmas],
        [
            CallHandling(
                kind=CallHandlingKind.HOLIDAY,
                schedule_id="sched-xmas",
                call_flow_id="cf-xmas",
            )
        ],
    )

    fragment, _ = r.resolve_auto_attendant(config, "voiceApp1")
    edges = fragment.edges()

    assert DiagramEdge(source="voiceApp1", target="holidayCheck1") in edges
    assert DiagramEdge(source="holidayCheck1", target="aaDefaultGreeting1", label="No") in edges
    assert fragment.elements[-1] == DiagramEdge(
        source="holidayCheck1", target="holidays1", label="Yes"
    )
    assert find_node(fragment, "businessHoursCheck1") is None
    assert find_node(fragment, "holidaySchedule1").label == [
        "Schedule",
        "2024-12-25 00:00 - 2024-12-26 00:00",
        "Time Zone: Pacific Standard Time",
    ]


def test_after_hours_without_holidays():
    r = resolver()
    office = OFFICE_HOURS.model_copy(update={"time_zone": "UTC"})
    config = aa_config(
        transfer("cf-default", ExternalPstnTarget(number="+1555123456")),
        [CallFlow(id="cf-closed", action=CallFlowAction.DISCONNECT)],
        [office],
        [
            CallHandling(
                kind=CallHandlingKind.AFTER_HOURS,
                schedule_id="sched-office",
                call_flow_id="cf-closed",
            )
        ],
    )

    fragment, _ = r.resolve_auto_attendant(config, "voiceApp1")
    edges = fragment.edges()

    assert DiagramEdge(source="voiceApp1", target="businessHoursCheck1") in edges
    assert (
        DiagramEdge(source="businessHoursCheck1", target="aaDefaultGreeting1", label="Yes")
        in edges
    )
    assert (
        DiagramEdge(source="businessHoursCheck1", target="aaAfterHoursGreeting1", label="No")
        in edges
    )
    assert find_node(fragment, "holidayCheck1") is None
    assert not any(isinstance(e, Subgraph) for e in fragment.elements)
    assert find_node(fragment, "businessHoursCheck1").label[-1] == "Time Zone: UTC"


def test_always_open_business_hours_has_no_gate():
    r = resolver()
    config = aa_config(
        transfer("cf-default", ExternalPstnTarget(number="+1555123456")),
        [CallFlow(id="cf-closed", action=CallFlowAction.DISCONNECT)],
        [ALWAYS_OPEN],
        [
            CallHandling(
                kind=CallHandlingKind.AFTER_HOURS,
                schedule_id="sched-24h",
                call_flow_id="cf-closed",
            )
        ],
    )
    fragment, _ = r.resolve_auto_attendant(config, "voiceApp1")
    assert find_node(fragment, "businessHoursCheck1") is None
    assert find_node(fragment, "aaAfterHoursGreeting1") is None


def test_menu_options_and_operator():
    r = resolver()
    menu = CallFlow(
        id="cf-default",
        action=CallFlowAction.MENU,
        menu_prompt=Greeting(kind=GreetingKind.TEXT_TO_SPEECH, text="Press 1 for sales"),
        menu_options=[
            MenuOption(
                key="1",
                action=CallFlowAction.TRANSFER_TO_TARGET,
                target=ApplicationEndpointTarget(id="ra-sales", voice_app=SALES),
                voice_responses=["Sales"],
            ),
            MenuOption(key="0", action=CallFlowAction.TRANSFER_TO_OPERATOR),
        ],
    )

    fragment, placed = r.resolve_auto_attendant(aa_config(menu), "voiceApp1")

    assert find_node(fragment, "aaDefaultMenuPrompt1").shape == NodeShape.SUBROUTINE
    assert (
        DiagramEdge(
            source="aaDefaultMenu1", target="aaDefaultOption1_1", label="Press 1 or say Sales"
        )
        in fragment.edges()
    )
    assert find_node(fragment, "aaDefaultOptionTarget1_2").label == ["No Operator Configured"]
    assert [p.origin.value for p in placed] == ["Default", "Default"]
