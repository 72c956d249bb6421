from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

# --- Diagram Elements ---


class NodeShape(str, Enum):
    ROUNDED = "rounded"  # actions and leaf targets
    RECTANGLE = "rectangle"  # nested voice app targets
    STADIUM = "stadium"  # voice app identity
    CIRCLE = "circle"  # incoming calls
    DOUBLE_CIRCLE = "double_circle"  # terminal outcomes
    RHOMBUS = "rhombus"  # decisions
    SUBROUTINE = "subroutine"  # greetings
    CYLINDER = "cylinder"  # queue settings rows


class EdgeStyle(str, Enum):
    SOLID = "solid"
    DOTTED = "dotted"
    LONG_DOTTED = "long_dotted"


class DiagramNode(BaseModel):
    id: str
    label: List[str]  # one entry per rendered line
    shape: NodeShape = NodeShape.ROUNDED
    link: Optional[str] = None


class DiagramEdge(BaseModel):
    source: str
    target: str
    label: Optional[str] = None
    style: EdgeStyle = EdgeStyle.SOLID


class DiagramComment(BaseModel):
    text: str


class Subgraph(BaseModel):
    id: str
    title: str
    direction: Optional[str] = None
    elements: List["DiagramElement"] = Field(default_factory=list)


DiagramElement = Union[DiagramNode, DiagramEdge, DiagramComment, Subgraph]

Subgraph.model_rebuild()


# --- Teams API Models ---


class TeamsAudioFile(BaseModel):
    id: Optional[str] = Field(None, alias="Id")
    file_name: Optional[str] = Field(None, alias="FileName")
    model_config = ConfigDict(populate_by_name=True)


class TeamsPrompt(BaseModel):
    active_type: str = Field("None", alias="ActiveType")  # None, TextToSpeech, AudioFile
    text_to_speech_prompt: Optional[str] = Field(None, alias="TextToSpeechPrompt")
    audio_file_prompt: Optional[TeamsAudioFile] = Field(None, alias="AudioFilePrompt")
    model_config = ConfigDict(populate_by_name=True)


class TeamsCallableEntity(BaseModel):
    id: str = Field(..., alias="Id")
    type: str = Field(..., alias="Type")  # User, ApplicationEndpoint, ExternalPstn, Phone, SharedVoicemail
    enable_transcription: bool = Field(False, alias="EnableTranscription")
    model_config = ConfigDict(populate_by_name=True)


class TeamsMenuOption(BaseModel):
    action: str = Field(..., alias="Action")  # DisconnectCall, TransferCallToTarget, ...
    dtmf_response: str = Field("Automatic", alias="DtmfResponse")
    call_target: Optional[TeamsCallableEntity] = Field(None, alias="CallTarget")
    voice_responses: List[str] = Field(default_factory=list, alias="VoiceResponses")
    prompt: Optional[TeamsPrompt] = Field(None, alias="Prompt")
    model_config = ConfigDict(populate_by_name=True)


class TeamsMenu(BaseModel):
    name: Optional[str] = Field(None, alias="Name")
    menu_options: List[TeamsMenuOption] = Field(default_factory=list, alias="MenuOptions")
    prompts: List[TeamsPrompt] = Field(default_factory=list, alias="Prompts")
    model_config = ConfigDict(populate_by_name=True)


class TeamsCallFlow(BaseModel):
    id: Optional[str] = Field(None, alias="Id")
    name: Optional[str] = Field(None, alias="Name")
    greetings: List[TeamsPrompt] = Field(default_factory=list, alias="Greetings")
    menu: Optional[TeamsMenu] = Field(None, alias="Menu")
    model_config = ConfigDict(populate_by_name=True)


class TeamsTimeRange(BaseModel):
    start: str = Field(..., alias="Start")  # "09:00:00"
    end: str = Field(..., alias="End")  # "17:00:00" or "1.00:00:00"
    model_config = ConfigDict(populate_by_name=True)


class TeamsWeeklyRecurrentSchedule(BaseModel):
    monday_hours: List[TeamsTimeRange] = Field(default_factory=list, alias="MondayHours")
    tuesday_hours: List[TeamsTimeRange] = Field(default_factory=list, alias="TuesdayHours")
    wednesday_hours: List[TeamsTimeRange] = Field(
        default_factory=list, alias="WednesdayHours"
    )
    thursday_hours: List[TeamsTimeRange] = Field(
        default_factory=list, alias="ThursdayHours"
    )
    friday_hours: List[TeamsTimeRange] = Field(default_factory=list, alias="FridayHours")
    saturday_hours: List[TeamsTimeRange] = Field(
        default_factory=list, alias="SaturdayHours"
    )
    sunday_hours: List[TeamsTimeRange] = Field(default_factory=list, alias="SundayHours")
    complement_enabled: bool = Field(False, alias="ComplementEnabled")
    model_config = ConfigDict(populate_by_name=True)

    def hours_for(self, weekday: str) -> List[TeamsTimeRange]:
        return getattr(self, f"{weekday.lower()}_hours")


class TeamsDateTimeRange(BaseModel):
    start: datetime = Field(..., alias="Start")
    end: datetime = Field(..., alias="End")
    model_config = ConfigDict(populate_by_name=True)


class TeamsFixedSchedule(BaseModel):
    date_time_ranges: List[TeamsDateTimeRange] = Field(
        default_factory=list, alias="DateTimeRanges"
    )
    model_config = ConfigDict(populate_by_name=True)


class TeamsSchedule(BaseModel):
    id: str = Field(..., alias="Id")
    name: str = Field("", alias="Name")
    type: str = Field(..., alias="Type")  # WeeklyRecurrence or Fixed
    weekly_recurrent_schedule: Optional[TeamsWeeklyRecurrentSchedule] = Field(
        None, alias="WeeklyRecurrentSchedule"
    )
    fixed_schedule: Optional[TeamsFixedSchedule] = Field(None, alias="FixedSchedule")
    model_config = ConfigDict(populate_by_name=True)


class TeamsCallHandlingAssociation(BaseModel):
    type: str = Field(..., alias="Type")  # AfterHours or Holiday
    schedule_id: str = Field(..., alias="ScheduleId")
    call_flow_id: str = Field(..., alias="CallFlowId")
    priority: int = Field(0, alias="Priority")
    enabled: bool = Field(True, alias="Enabled")
    model_config = ConfigDict(populate_by_name=True)


class TeamsAutoAttendant(BaseModel):
    identity: str = Field(..., alias="Identity")
    name: str = Field(..., alias="Name")
    time_zone_id: Optional[str] = Field(None, alias="TimeZoneId")
    default_call_flow: TeamsCallFlow = Field(..., alias="DefaultCallFlow")
    call_flows: List[TeamsCallFlow] = Field(default_factory=list, alias="CallFlows")
    schedules: List[TeamsSchedule] = Field(default_factory=list, alias="Schedules")
    call_handling_associations: List[TeamsCallHandlingAssociation] = Field(
        default_factory=list, alias="CallHandlingAssociations"
    )
    application_instances: List[str] = Field(
        default_factory=list, alias="ApplicationInstances"
    )
    operator: Optional[TeamsCallableEntity] = Field(None, alias="Operator")
    model_config = ConfigDict(populate_by_name=True)


class TeamsCallQueueAgent(BaseModel):
    object_id: str = Field(..., alias="ObjectId")
    opt_in: bool = Field(True, alias="OptIn")
    model_config = ConfigDict(populate_by_name=True)


class TeamsCallQueue(BaseModel):
    identity: str = Field(..., alias="Identity")
    name: str = Field(..., alias="Name")
    routing_method: str = Field("Attendant", alias="RoutingMethod")
    agent_alert_time: int = Field(30, alias="AgentAlertTime")
    allow_opt_out: bool = Field(True, alias="AllowOptOut")
    conference_mode: bool = Field(False, alias="ConferenceMode")
    presence_based_routing: bool = Field(False, alias="PresenceBasedRouting")
    use_default_music_on_hold: Optional[bool] = Field(None, alias="UseDefaultMusicOnHold")
    music_on_hold_audio_file_id: Optional[str] = Field(
        None, alias="MusicOnHoldAudioFileId"
    )
    welcome_music_audio_file_id: Optional[str] = Field(
        None, alias="WelcomeMusicAudioFileId"
    )
    welcome_text_to_speech_prompt: Optional[str] = Field(
        None, alias="WelcomeTextToSpeechPrompt"
    )
    overflow_threshold: int = Field(50, alias="OverflowThreshold")
    overflow_action: str = Field("DisconnectWithBusy", alias="OverflowAction")
    overflow_action_target: Optional[TeamsCallableEntity] = Field(
        None, alias="OverflowActionTarget"
    )
    overflow_shared_voicemail_text_to_speech_prompt: Optional[str] = Field(
        None, alias="OverflowSharedVoicemailTextToSpeechPrompt"
    )
    overflow_shared_voicemail_audio_file_prompt: Optional[str] = Field(
        None, alias="OverflowSharedVoicemailAudioFilePrompt"
    )
    enable_overflow_shared_voicemail_transcription: bool = Field(
        False, alias="EnableOverflowSharedVoicemailTranscription"
    )
    timeout_threshold: int = Field(1200, alias="TimeoutThreshold")
    timeout_action: str = Field("Disconnect", alias="TimeoutAction")
    timeout_action_target: Optional[TeamsCallableEntity] = Field(
        None, alias="TimeoutActionTarget"
    )
    timeout_shared_voicemail_text_to_speech_prompt: Optional[str] = Field(
        None, alias="TimeoutSharedVoicemailTextToSpeechPrompt"
    )
    timeout_shared_voicemail_audio_file_prompt: Optional[str] = Field(
        None, alias="TimeoutSharedVoicemailAudioFilePrompt"
    )
    enable_timeout_shared_voicemail_transcription: bool = Field(
        False, alias="EnableTimeoutSharedVoicemailTranscription"
    )
    distribution_lists: List[str] = Field(default_factory=list, alias="DistributionLists")
    channel_id: Optional[str] = Field(None, alias="ChannelId")
    agents: List[TeamsCallQueueAgent] = Field(default_factory=list, alias="Agents")
    application_instances: List[str] = Field(
        default_factory=list, alias="ApplicationInstances"
    )
    model_config = ConfigDict(populate_by_name=True)


class TeamsResourceAccount(BaseModel):
    object_id: str = Field(..., alias="ObjectId")
    display_name: str = Field("", alias="DisplayName")
    phone_number: Optional[str] = Field(None, alias="PhoneNumber")
    application_id: Optional[str] = Field(None, alias="ApplicationId")
    model_config = ConfigDict(populate_by_name=True)


class GraphDirectoryObject(BaseModel):
    """Users, groups and channels as returned by Microsoft Graph."""

    id: str
    display_name: Optional[str] = Field(None, alias="displayName")
    model_config = ConfigDict(populate_by_name=True)


# --- Call Flow Model ---


class VoiceAppKind(str, Enum):
    AUTO_ATTENDANT = "AutoAttendant"
    CALL_QUEUE = "CallQueue"


class ResourceAccount(BaseModel):
    id: str
    display_name: str = ""
    phone_number: Optional[str] = None
    model_config = ConfigDict(frozen=True)


class VoiceApp(BaseModel):
    kind: VoiceAppKind
    id: str
    name: str
    resource_accounts: List[ResourceAccount] = Field(default_factory=list)
    model_config = ConfigDict(frozen=True)

    @property
    def phone_numbers(self) -> List[str]:
        return [ra.phone_number for ra in self.resource_accounts if ra.phone_number]

    @property
    def kind_label(self) -> str:
        if self.kind == VoiceAppKind.AUTO_ATTENDANT:
            return "Auto Attendant"
        return "Call Queue"


class ScheduleKind(str, Enum):
    HOLIDAY = "Holiday"
    BUSINESS_HOURS = "BusinessHours"


class TimeInterval(BaseModel):
    start: timedelta
    end: timedelta
    model_config = ConfigDict(frozen=True)


FULL_DAY = TimeInterval(start=timedelta(0), end=timedelta(days=1))


class DateRange(BaseModel):
    start: datetime
    end: datetime
    model_config = ConfigDict(frozen=True)


class Schedule(BaseModel):
    kind: ScheduleKind
    id: str
    name: str = ""
    enabled: bool = True
    time_zone: Optional[str] = None
    date_ranges: List[DateRange] = Field(default_factory=list)
    weekly_recurrence: Dict[str, List[TimeInterval]] = Field(default_factory=dict)
    complement_enabled: bool = False
    model_config = ConfigDict(frozen=True)

    @property
    def is_always_open(self) -> bool:
        """True for the default 'open around the clock' business hours."""
        if self.kind != ScheduleKind.BUSINESS_HOURS or not self.complement_enabled:
            return False
        return all(self.weekly_recurrence.get(day) == [FULL_DAY] for day in WEEKDAYS)


class CallHandlingKind(str, Enum):
    HOLIDAY = "Holiday"
    AFTER_HOURS = "AfterHours"


class CallHandling(BaseModel):
    kind: CallHandlingKind
    schedule_id: str
    call_flow_id: str
    enabled: bool = True
    model_config = ConfigDict(frozen=True)


class GreetingKind(str, Enum):
    NONE = "None"
    AUDIO_FILE = "AudioFile"
    TEXT_TO_SPEECH = "TextToSpeech"


class Greeting(BaseModel):
    kind: GreetingKind = GreetingKind.NONE
    text: Optional[str] = None  # prompt text or audio file name
    model_config = ConfigDict(frozen=True)


class UserTarget(BaseModel):
    type: Literal["User"] = "User"
    id: str
    display_name: str
    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> str:
        return f"user:{self.id}"


class ExternalPstnTarget(BaseModel):
    type: Literal["ExternalPstn"] = "ExternalPstn"
    number: str
    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> str:
        return f"pstn:{self.number}"


class SharedVoicemailTarget(BaseModel):
    type: Literal["SharedVoicemail"] = "SharedVoicemail"
    id: str
    group_name: str
    greeting_kind: GreetingKind = GreetingKind.NONE
    transcription: bool = False
    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> str:
        return f"sharedVoicemail:{self.id}"


class ApplicationEndpointTarget(BaseModel):
    type: Literal["ApplicationEndpoint"] = "ApplicationEndpoint"
    id: str  # resource account object id
    voice_app: VoiceApp
    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> str:
        return f"voiceApp:{self.voice_app.id}"


class UnknownTarget(BaseModel):
    type: Literal["Unknown"] = "Unknown"
    id: str
    reason: str = "Unknown Target"
    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> str:
        return f"unknown:{self.id}"


CallTarget = Annotated[
    Union[
        UserTarget,
        ExternalPstnTarget,
        SharedVoicemailTarget,
        ApplicationEndpointTarget,
        UnknownTarget,
    ],
    Field(discriminator="type"),
]


class CallFlowAction(str, Enum):
    DISCONNECT = "Disconnect"
    TRANSFER_TO_TARGET = "TransferToTarget"
    TRANSFER_TO_OPERATOR = "TransferToOperator"
    ANNOUNCEMENT = "Announcement"
    MENU = "Menu"
    UNKNOWN = "Unknown"


class MenuOption(BaseModel):
    key: str  # "1".."9", "0", "*", "#"
    action: CallFlowAction
    target: Optional[CallTarget] = None
    voice_responses: List[str] = Field(default_factory=list)
    model_config = ConfigDict(frozen=True)


class CallFlow(BaseModel):
    id: str
    name: str = ""
    greeting: Greeting = Field(default_factory=Greeting)
    action: CallFlowAction
    target: Optional[CallTarget] = None
    menu_options: List[MenuOption] = Field(default_factory=list)
    menu_prompt: Greeting = Field(default_factory=Greeting)
    model_config = ConfigDict(frozen=True)


class AutoAttendantConfig(BaseModel):
    voice_app: VoiceApp
    default_call_flow: CallFlow
    call_flows: List[CallFlow] = Field(default_factory=list)
    schedules: List[Schedule] = Field(default_factory=list)
    call_handlings: List[CallHandling] = Field(default_factory=list)
    operator: Optional[CallTarget] = None
    model_config = ConfigDict(frozen=True)

    def call_flow(self, call_flow_id: str) -> Optional[CallFlow]:
        return next((cf for cf in self.call_flows if cf.id == call_flow_id), None)

    def schedule(self, schedule_id: str) -> Optional[Schedule]:
        return next((s for s in self.schedules if s.id == schedule_id), None)

    def _handled_flows(self, kind: CallHandlingKind) -> List[Tuple[Schedule, CallFlow]]:
        flows = []
        for handling in self.call_handlings:
            if handling.kind != kind or not handling.enabled:
                continue
            schedule = self.schedule(handling.schedule_id)
            call_flow = self.call_flow(handling.call_flow_id)
            if schedule and call_flow and schedule.enabled:
                flows.append((schedule, call_flow))
        return flows

    def holiday_flows(self) -> List[Tuple[Schedule, CallFlow]]:
        return self._handled_flows(CallHandlingKind.HOLIDAY)

    def after_hours_flow(self) -> Optional[Tuple[Schedule, CallFlow]]:
        flows = self._handled_flows(CallHandlingKind.AFTER_HOURS)
        return flows[0] if flows else None


class QueueAction(str, Enum):
    DISCONNECT = "Disconnect"
    FORWARD = "Forward"
    VOICEMAIL = "Voicemail"
    SHARED_VOICEMAIL = "SharedVoicemail"
    UNKNOWN = "Unknown"


class MusicOnHold(str, Enum):
    DEFAULT = "Default"
    CUSTOM = "Custom"


class AgentListKind(str, Enum):
    USERS = "Users"
    GROUP = "Group"
    TEAMS_CHANNEL = "TeamsChannel"


class Agent(BaseModel):
    id: str
    display_name: str
    opt_in: bool = True
    model_config = ConfigDict(frozen=True)


class CallQueueSettings(BaseModel):
    overflow_threshold: int
    overflow_action: QueueAction
    overflow_target: Optional[CallTarget] = None
    timeout_threshold: int
    timeout_action: QueueAction
    timeout_target: Optional[CallTarget] = None
    routing_method: str
    agent_alert_time: int
    music_on_hold: MusicOnHold = MusicOnHold.DEFAULT
    conference_mode_enabled: bool = False
    agent_opt_out_allowed: bool = True
    presence_based_routing: bool = False
    agent_list_kind: AgentListKind = AgentListKind.USERS
    agent_list_names: List[str] = Field(default_factory=list)
    agents: List[Agent] = Field(default_factory=list)
    greeting: Greeting = Field(default_factory=Greeting)
    model_config = ConfigDict(frozen=True)


class CallQueueConfig(BaseModel):
    voice_app: VoiceApp
    settings: CallQueueSettings
    model_config = ConfigDict(frozen=True)
