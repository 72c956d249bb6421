from branch_resolver import BranchResolver
from config import RenderOptions
from context import RenderContext
from diagram import ExpansionOrigin
from factories import find_node
from models import (
    Agent,
    ApplicationEndpointTarget,
    CallQueueConfig,
    CallQueueSettings,
    DiagramEdge,
    ExternalPstnTarget,
    Greeting,
    GreetingKind,
    NodeShape,
    QueueAction,
    SharedVoicemailTarget,
    Subgraph,
    UserTarget,
    VoiceApp,
    VoiceAppKind,
)
from queue_builder import QueueEntry, QueueFlowBuilder, outcome_identity

SUPPORT = VoiceApp(kind=VoiceAppKind.CALL_QUEUE, id="cq-support", name="Support")
BACKUP = VoiceApp(kind=VoiceAppKind.AUTO_ATTENDANT, id="aa-backup", name="Backup")


def queue(**overrides):
    values = dict(
        overflow_threshold=50,
        overflow_action=QueueAction.DISCONNECT,
        timeout_threshold=300,
        timeout_action=QueueAction.DISCONNECT,
        routing_method="RoundRobin",
        agent_alert_time=20,
        agents=[
            Agent(id="u-1", display_name="Alice"),
            Agent(id="u-2", display_name="Bob", opt_in=False),
        ],
    )
    values.update(overrides)
    return CallQueueConfig(voice_app=SUPPORT, settings=CallQueueSettings(**values))


def builder(**options):
    ctx = RenderContext(RenderOptions(**options))
    return QueueFlowBuilder(ctx, BranchResolver(ctx))


def entry():
    return QueueEntry(node_id="voiceApp1", origin=ExpansionOrigin.TOP_LEVEL)


def test_outcome_identity():
    pstn = ExternalPstnTarget(number="+15550001111")
    assert outcome_identity(QueueAction.FORWARD, pstn) == "Forward:pstn:+15550001111"
    assert outcome_identity(QueueAction.DISCONNECT, None) is None
    assert outcome_identity(QueueAction.FORWARD, None) is None


def test_basic_queue_layout():
    flow = builder().build(queue(), entry())
    fragment = flow.fragment
    edges = fragment.edges()

    assert flow.number == 1
    assert flow.targets == []
    assert find_node(fragment, "cqGreeting1") is None
    assert DiagramEdge(source="voiceApp1", target="cqOverflowCheck1") in edges
    assert find_node(fragment, "cqOverflowCheck1").label == ["More than 50", "Active Calls"]
    assert find_node(fragment, "cqOverflowTarget1").shape == NodeShape.DOUBLE_CIRCLE
    assert DiagramEdge(source="cqOverflowCheck1", target="cqRouting1", label="No") in edges
    assert DiagramEdge(source="cqTimeoutSetting1", target="cqAgentList1") in edges
    assert DiagramEdge(source="cqAgent1_1", target="cqTimeout1") in edges
    assert DiagramEdge(source="cqAgent1_2", target="cqTimeout1") in edges
    assert DiagramEdge(source="cqCallConnected1", target="cqConnected1", label="Yes") in edges
    assert (
        DiagramEdge(source="cqCallConnected1", target="cqTimeoutTarget1", label="No") in edges
    )
    assert find_node(fragment, "cqAgent1_2").label == ["Bob", "Opted Out"]
    assert find_node(fragment, "cqRouting1").label == ["Routing Method: RoundRobin"]

    distribution = next(e for e in fragment.elements if isinstance(e, Subgraph))
    assert distribution.id == "cqDistribution1"
    assert [sg.id for sg in distribution.elements] == ["cqSettings1", "cqAgents1"]


def test_greeting_precedes_overflow_check():
    config = queue(greeting=Greeting(kind=GreetingKind.TEXT_TO_SPEECH, text="Hold please"))
    fragment = builder().build(config, entry()).fragment

    assert find_node(fragment, "cqGreeting1").shape == NodeShape.SUBROUTINE
    assert DiagramEdge(source="voiceApp1", target="cqGreeting1") in fragment.edges()
    assert DiagramEdge(source="cqGreeting1", target="cqOverflowCheck1") in fragment.edges()


def test_shared_overflow_and_timeout_target():
    backup = ApplicationEndpointTarget(id="ra-backup", voice_app=BACKUP)
    config = queue(
        overflow_action=QueueAction.FORWARD,
        overflow_target=backup,
        timeout_action=QueueAction.FORWARD,
        timeout_target=backup,
    )
    flow = builder().build(config, entry())

    target_nodes = [n for n in flow.fragment.nodes() if n.label == ["Auto Attendant", "Backup"]]
    assert [n.id for n in target_nodes] == ["cqTimeoutTarget1"]
    assert find_node(flow.fragment, "cqOverflowTarget1") is None
    assert (
        DiagramEdge(source="cqOverflowCheck1", target="cqTimeoutTarget1", label="Yes")
        in flow.fragment.edges()
    )
    assert (
        DiagramEdge(source="cqCallConnected1", target="cqTimeoutTarget1", label="No")
        in flow.fragment.edges()
    )
    assert [(t.node_id, t.origin) for t in flow.targets] == [
        ("cqTimeoutTarget1", ExpansionOrigin.TIMEOUT)
    ]


def test_distinct_outcomes_and_voicemail():
    config = queue(
        overflow_action=QueueAction.SHARED_VOICEMAIL,
        overflow_target=SharedVoicemailTarget(
            id="g-1", group_name="Support VM", transcription=True
        ),
        timeout_action=QueueAction.VOICEMAIL,
        timeout_target=UserTarget(id="u-9", display_name="Manager"),
    )
    flow = builder().build(config, entry())

    assert find_node(flow.fragment, "cqOverflowTarget1").label == [
        "Shared Voicemail",
        "Support VM",
        "Transcription: Enabled",
    ]
    assert find_node(flow.fragment, "cqTimeoutTarget1").label == [
        "Personal Voicemail",
        "Manager",
    ]
    assert [t.origin for t in flow.targets] == [
        ExpansionOrigin.OVERFLOW,
        ExpansionOrigin.TIMEOUT,
    ]


def test_admin_links_on_agents():
    fragment = builder(show_admin_links=True).build(queue(), entry()).fragment
    assert find_node(fragment, "cqAgent1_1").link.endswith("/users/u-1/account")
