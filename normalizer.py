import logging
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException

from errors import AmbiguousApplication, VoiceAppNotFound
from models import (
    WEEKDAYS,
    Agent,
    AgentListKind,
    ApplicationEndpointTarget,
    AutoAttendantConfig,
    CallFlow,
    CallFlowAction,
    CallHandling,
    CallHandlingKind,
    CallQueueConfig,
    CallQueueSettings,
    CallTarget,
    DateRange,
    ExternalPstnTarget,
    Greeting,
    GreetingKind,
    MenuOption,
    MusicOnHold,
    QueueAction,
    ResourceAccount,
    Schedule,
    ScheduleKind,
    SharedVoicemailTarget,
    TeamsAutoAttendant,
    TeamsCallableEntity,
    TeamsCallFlow,
    TeamsCallQueue,
    TeamsPrompt,
    TeamsResourceAccount,
    TeamsSchedule,
    TimeInterval,
    UnknownTarget,
    UserTarget,
    VoiceApp,
    VoiceAppKind,
)
from teams_client import TeamsClient
from utils import parse_timespan, phone_digits, strip_phone_scheme

logger = logging.getLogger(__name__)

DTMF_KEYS = {
    "Tone0": "0",
    "Tone1": "1",
    "Tone2": "2",
    "Tone3": "3",
    "Tone4": "4",
    "Tone5": "5",
    "Tone6": "6",
    "Tone7": "7",
    "Tone8": "8",
    "Tone9": "9",
    "ToneStar": "*",
    "TonePound": "#",
}

FLOW_ACTIONS = {
    "DisconnectCall": CallFlowAction.DISCONNECT,
    "TransferCallToTarget": CallFlowAction.TRANSFER_TO_TARGET,
    "TransferCallToOperator": CallFlowAction.TRANSFER_TO_OPERATOR,
    "Announcement": CallFlowAction.ANNOUNCEMENT,
}

QUEUE_ACTIONS = {
    "Disconnect": QueueAction.DISCONNECT,
    "DisconnectWithBusy": QueueAction.DISCONNECT,
    "Forward": QueueAction.FORWARD,
    "Voicemail": QueueAction.VOICEMAIL,
    "SharedVoicemail": QueueAction.SHARED_VOICEMAIL,
}


def normalize_greeting(prompts: List[TeamsPrompt]) -> Greeting:
    for prompt in prompts:
        if prompt.active_type == "TextToSpeech":
            return Greeting(
                kind=GreetingKind.TEXT_TO_SPEECH, text=prompt.text_to_speech_prompt
            )
        if prompt.active_type == "AudioFile":
            file_name = None
            if prompt.audio_file_prompt:
                file_name = prompt.audio_file_prompt.file_name
            return Greeting(kind=GreetingKind.AUDIO_FILE, text=file_name)
    return Greeting()


def normalize_schedule(raw: TeamsSchedule, time_zone: Optional[str] = None) -> Schedule:
    if raw.type == "Fixed":
        ranges = []
        if raw.fixed_schedule:
            ranges = [
                DateRange(start=r.start, end=r.end)
                for r in raw.fixed_schedule.date_time_ranges
            ]
        return Schedule(
            kind=ScheduleKind.HOLIDAY,
            id=raw.id,
            name=raw.name,
            time_zone=time_zone,
            date_ranges=ranges,
        )

    weekly: Dict[str, List[TimeInterval]] = {}
    complement = False
    if raw.weekly_recurrent_schedule:
        recurrence = raw.weekly_recurrent_schedule
        complement = recurrence.complement_enabled
        for day in WEEKDAYS:
            intervals = []
            for time_range in recurrence.hours_for(day):
                try:
                    intervals.append(
                        TimeInterval(
                            start=parse_timespan(time_range.start),
                            end=parse_timespan(time_range.end),
                        )
                    )
                except ValueError as e:
                    logger.warning(f"Skipping interval in schedule {raw.name}: {e}")
            weekly[day] = intervals

    return Schedule(
        kind=ScheduleKind.BUSINESS_HOURS,
        id=raw.id,
        name=raw.name,
        time_zone=time_zone,
        weekly_recurrence=weekly,
        complement_enabled=complement,
    )


def _shared_voicemail_greeting(tts: Optional[str], audio: Optional[str]) -> GreetingKind:
    if tts:
        return GreetingKind.TEXT_TO_SPEECH
    if audio:
        return GreetingKind.AUDIO_FILE
    return GreetingKind.NONE


class ModelNormalizer:
    """Turns raw Teams configuration into the call flow model.

    One instance serves one render: voice apps and resource accounts are
    fetched once by ``prefetch()`` and directory lookups are cached.
    """

    def __init__(self, client: TeamsClient):
        self.client = client
        self.resource_accounts: Dict[str, TeamsResourceAccount] = {}
        self.auto_attendants: Dict[str, TeamsAutoAttendant] = {}
        self.call_queues: Dict[str, TeamsCallQueue] = {}

        self.users_cache: Dict[str, Optional[str]] = {}
        self.groups_cache: Dict[str, Optional[str]] = {}
        self.channels_cache: Dict[str, Optional[str]] = {}

        self._voice_apps: Dict[str, VoiceApp] = {}
        # resource account id -> voice app id
        self._owners: Dict[str, str] = {}

    async def prefetch(self):
        logger.info("Fetching resource accounts...")
        accounts = await self.client.get_resource_accounts()
        self.resource_accounts = {ra.object_id: ra for ra in accounts or []}
        logger.debug(f"Cached {len(self.resource_accounts)} resource accounts.")

        logger.info("Fetching auto attendants...")
        auto_attendants = await self.client.get_auto_attendants()
        self.auto_attendants = {aa.identity: aa for aa in auto_attendants or []}

        logger.info("Fetching call queues...")
        call_queues = await self.client.get_call_queues()
        self.call_queues = {cq.identity: cq for cq in call_queues or []}

        logger.info(
            f"Found {len(self.auto_attendants)} auto attendants and "
            f"{len(self.call_queues)} call queues."
        )
        self._index()

    def _index(self):
        self._voice_apps = {}
        self._owners = {}

        # Auto attendants first: an account claimed by both resolves to the AA
        for aa in self.auto_attendants.values():
            self._register(
                VoiceAppKind.AUTO_ATTENDANT, aa.identity, aa.name, aa.application_instances
            )
        for cq in self.call_queues.values():
            self._register(
                VoiceAppKind.CALL_QUEUE, cq.identity, cq.name, cq.application_instances
            )

    def _register(
        self, kind: VoiceAppKind, identity: str, name: str, instance_ids: List[str]
    ):
        accounts = []
        for account_id in instance_ids:
            raw = self.resource_accounts.get(account_id)
            if not raw:
                logger.debug(f"Resource account {account_id} of {name} not found.")
                continue
            accounts.append(
                ResourceAccount(
                    id=raw.object_id,
                    display_name=raw.display_name,
                    phone_number=strip_phone_scheme(raw.phone_number),
                )
            )
            self._owners.setdefault(account_id, identity)

        self._voice_apps[identity] = VoiceApp(
            kind=kind, id=identity, name=name, resource_accounts=accounts
        )

    # --- Directory Provider operations ---

    def voice_apps(
        self, name_filter: Optional[str] = None, kind: Optional[VoiceAppKind] = None
    ) -> List[VoiceApp]:
        apps = list(self._voice_apps.values())
        if name_filter:
            needle = name_filter.lower()
            apps = [a for a in apps if needle in a.name.lower()]
        if kind:
            apps = [a for a in apps if a.kind == kind]
        return sorted(apps, key=lambda a: (a.name.lower(), a.id))

    def find_voice_app(self, voice_app_id: str) -> VoiceApp:
        app = self._voice_apps.get(voice_app_id)
        if not app:
            raise VoiceAppNotFound(f"No auto attendant or call queue with id {voice_app_id}")
        return app

    def find_voice_app_by_phone_number(self, number: str) -> VoiceApp:
        digits = phone_digits(number)
        if digits:
            for account in self.resource_accounts.values():
                if phone_digits(account.phone_number) != digits:
                    continue
                owner = self._owners.get(account.object_id)
                if owner:
                    return self._voice_apps[owner]
                logger.warning(
                    f"Resource account {account.display_name} with number {number} "
                    "is not assigned to a voice app."
                )
                break

        raise VoiceAppNotFound(
            f"No resource account found with phone number {number}",
            phone_number=number,
        )

    def resolve_application_endpoint(self, resource_account_id: str) -> VoiceApp:
        owner = self._owners.get(resource_account_id)
        if not owner:
            raise AmbiguousApplication(resource_account_id)
        return self._voice_apps[owner]

    async def _lookup(self, cache: Dict[str, Optional[str]], key: str, fetch) -> Optional[str]:
        if key in cache:
            return cache[key]
        try:
            entry = await fetch()
        except HTTPException as e:
            logger.warning(f"Directory lookup for {key} failed: {e.detail}")
            entry = None
        name = (entry.display_name or key) if entry else None
        cache[key] = name
        return name

    async def resolve_user(self, object_id: str) -> Optional[str]:
        return await self._lookup(
            self.users_cache, object_id, lambda: self.client.get_user(object_id)
        )

    async def resolve_group(self, object_id: str) -> Optional[str]:
        return await self._lookup(
            self.groups_cache, object_id, lambda: self.client.get_group(object_id)
        )

    async def resolve_channel(self, team_id: str, channel_id: str) -> Optional[str]:
        return await self._lookup(
            self.channels_cache,
            f"{team_id}/{channel_id}",
            lambda: self.client.get_channel(team_id, channel_id),
        )

    # --- Normalization ---

    async def resolve_target(
        self,
        raw: Optional[TeamsCallableEntity],
        greeting_kind: GreetingKind = GreetingKind.NONE,
        transcription: Optional[bool] = None,
    ) -> Optional[CallTarget]:
        if raw is None:
            return None

        if raw.type == "User":
            name = await self.resolve_user(raw.id)
            if name is None:
                return UnknownTarget(id=raw.id, reason="User Not Found")
            return UserTarget(id=raw.id, display_name=name)

        if raw.type in ("ExternalPstn", "Phone"):
            return ExternalPstnTarget(number=strip_phone_scheme(raw.id) or raw.id)

        if raw.type == "SharedVoicemail":
            group_name = await self.resolve_group(raw.id)
            if group_name is None:
                return UnknownTarget(id=raw.id, reason="Group Not Found")
            return SharedVoicemailTarget(
                id=raw.id,
                group_name=group_name,
                greeting_kind=greeting_kind,
                transcription=(
                    raw.enable_transcription if transcription is None else transcription
                ),
            )

        if raw.type == "ApplicationEndpoint":
            try:
                voice_app = self.resolve_application_endpoint(raw.id)
            except AmbiguousApplication as e:
                logger.warning(f"{e}; rendering as unknown target.")
                return UnknownTarget(id=raw.id)
            return ApplicationEndpointTarget(id=raw.id, voice_app=voice_app)

        logger.warning(f"Unsupported call target type {raw.type} for {raw.id}")
        return UnknownTarget(id=raw.id, reason=f"Unsupported Target: {raw.type}")

    async def normalize_call_flow(self, raw: TeamsCallFlow, fallback_id: str) -> CallFlow:
        greeting = normalize_greeting(raw.greetings)
        flow_id = raw.id or fallback_id
        name = raw.name or ""
        options = raw.menu.menu_options if raw.menu else []

        if not options:
            return CallFlow(
                id=flow_id, name=name, greeting=greeting, action=CallFlowAction.DISCONNECT
            )

        if len(options) == 1 and options[0].dtmf_response == "Automatic":
            option = options[0]
            action = FLOW_ACTIONS.get(option.action, CallFlowAction.UNKNOWN)
            target = None
            if action == CallFlowAction.TRANSFER_TO_TARGET:
                target = await self.resolve_target(option.call_target)
            return CallFlow(
                id=flow_id, name=name, greeting=greeting, action=action, target=target
            )

        menu_options = []
        for option in options:
            action = FLOW_ACTIONS.get(option.action, CallFlowAction.UNKNOWN)
            target = None
            if action == CallFlowAction.TRANSFER_TO_TARGET:
                target = await self.resolve_target(option.call_target)
            menu_options.append(
                MenuOption(
                    key=DTMF_KEYS.get(option.dtmf_response, option.dtmf_response),
                    action=action,
                    target=target,
                    voice_responses=option.voice_responses,
                )
            )

        return CallFlow(
            id=flow_id,
            name=name,
            greeting=greeting,
            action=CallFlowAction.MENU,
            menu_options=menu_options,
            menu_prompt=normalize_greeting(raw.menu.prompts if raw.menu else []),
        )

    async def load_auto_attendant(self, voice_app: VoiceApp) -> AutoAttendantConfig:
        raw = self.auto_attendants.get(voice_app.id)
        if raw is None:
            raw = await self.client.get_auto_attendant(voice_app.id)
        if raw is None:
            raise VoiceAppNotFound(f"Auto attendant {voice_app.id} not found")

        logger.debug(f"Normalizing auto attendant {raw.name}")
        default_flow = await self.normalize_call_flow(
            raw.default_call_flow, f"{raw.identity}-default"
        )

        call_flows = []
        for i, call_flow in enumerate(raw.call_flows):
            call_flows.append(
                await self.normalize_call_flow(call_flow, f"{raw.identity}-flow-{i}")
            )

        schedules = [normalize_schedule(s, raw.time_zone_id) for s in raw.schedules]

        handlings = []
        for association in raw.call_handling_associations:
            if association.type == "Holiday":
                kind = CallHandlingKind.HOLIDAY
            elif association.type == "AfterHours":
                kind = CallHandlingKind.AFTER_HOURS
            else:
                logger.debug(f"Ignoring call handling association {association.type}")
                continue
            handlings.append(
                CallHandling(
                    kind=kind,
                    schedule_id=association.schedule_id,
                    call_flow_id=association.call_flow_id,
                    enabled=association.enabled,
                )
            )

        return AutoAttendantConfig(
            voice_app=voice_app,
            default_call_flow=default_flow,
            call_flows=call_flows,
            schedules=schedules,
            call_handlings=handlings,
            operator=await self.resolve_target(raw.operator),
        )

    async def _queue_outcome(
        self,
        action_name: str,
        raw_target: Optional[TeamsCallableEntity],
        greeting_kind: GreetingKind,
        transcription: bool,
    ) -> Tuple[QueueAction, Optional[CallTarget]]:
        action = QUEUE_ACTIONS.get(action_name, QueueAction.UNKNOWN)
        if action in (QueueAction.DISCONNECT, QueueAction.UNKNOWN):
            return action, None
        if action == QueueAction.SHARED_VOICEMAIL:
            return action, await self.resolve_target(
                raw_target, greeting_kind=greeting_kind, transcription=transcription
            )
        return action, await self.resolve_target(raw_target)

    async def load_call_queue(self, voice_app: VoiceApp) -> CallQueueConfig:
        raw = self.call_queues.get(voice_app.id)
        if raw is None:
            raw = await self.client.get_call_queue(voice_app.id)
        if raw is None:
            raise VoiceAppNotFound(f"Call queue {voice_app.id} not found")

        logger.debug(f"Normalizing call queue {raw.name}")
        overflow_action, overflow_target = await self._queue_outcome(
            raw.overflow_action,
            raw.overflow_action_target,
            _shared_voicemail_greeting(
                raw.overflow_shared_voicemail_text_to_speech_prompt,
                raw.overflow_shared_voicemail_audio_file_prompt,
            ),
            raw.enable_overflow_shared_voicemail_transcription,
        )
        timeout_action, timeout_target = await self._queue_outcome(
            raw.timeout_action,
            raw.timeout_action_target,
            _shared_voicemail_greeting(
                raw.timeout_shared_voicemail_text_to_speech_prompt,
                raw.timeout_shared_voicemail_audio_file_prompt,
            ),
            raw.enable_timeout_shared_voicemail_transcription,
        )

        if raw.channel_id and raw.distribution_lists:
            list_kind = AgentListKind.TEAMS_CHANNEL
            team_id = raw.distribution_lists[0]
            team_name = await self.resolve_group(team_id) or team_id
            channel_name = await self.resolve_channel(team_id, raw.channel_id)
            list_names = [f"{team_name} / {channel_name or raw.channel_id}"]
        elif raw.distribution_lists:
            list_kind = AgentListKind.GROUP
            list_names = []
            for group_id in raw.distribution_lists:
                list_names.append(await self.resolve_group(group_id) or group_id)
        else:
            list_kind = AgentListKind.USERS
            list_names = []

        agents = []
        for agent in raw.agents:
            name = await self.resolve_user(agent.object_id)
            agents.append(
                Agent(
                    id=agent.object_id,
                    display_name=name or f"Unknown Agent ({agent.object_id})",
                    opt_in=agent.opt_in,
                )
            )

        if raw.welcome_text_to_speech_prompt:
            greeting = Greeting(
                kind=GreetingKind.TEXT_TO_SPEECH, text=raw.welcome_text_to_speech_prompt
            )
        elif raw.welcome_music_audio_file_id:
            greeting = Greeting(kind=GreetingKind.AUDIO_FILE)
        else:
            greeting = Greeting()

        custom_music = bool(raw.music_on_hold_audio_file_id) and not raw.use_default_music_on_hold

        settings = CallQueueSettings(
            overflow_threshold=raw.overflow_threshold,
            overflow_action=overflow_action,
            overflow_target=overflow_target,
            timeout_threshold=raw.timeout_threshold,
            timeout_action=timeout_action,
            timeout_target=timeout_target,
            routing_method=raw.routing_method,
            agent_alert_time=raw.agent_alert_time,
            music_on_hold=MusicOnHold.CUSTOM if custom_music else MusicOnHold.DEFAULT,
            conference_mode_enabled=raw.conference_mode,
            agent_opt_out_allowed=raw.allow_opt_out,
            presence_based_routing=raw.presence_based_routing,
            agent_list_kind=list_kind,
            agent_list_names=list_names,
            agents=agents,
            greeting=greeting,
        )
        return CallQueueConfig(voice_app=voice_app, settings=settings)

    # --- Cross references ---

    def _direct_targets(self, voice_app_id: str) -> List[TeamsCallableEntity]:
        targets: List[TeamsCallableEntity] = []
        aa = self.auto_attendants.get(voice_app_id)
        if aa:
            for call_flow in [aa.default_call_flow] + aa.call_flows:
                if call_flow.menu:
                    targets.extend(
                        o.call_target for o in call_flow.menu.menu_options if o.call_target
                    )
            if aa.operator:
                targets.append(aa.operator)
        cq = self.call_queues.get(voice_app_id)
        if cq:
            for target in (cq.overflow_action_target, cq.timeout_action_target):
                if target:
                    targets.append(target)
        return targets

    def voice_apps_routing_to(self, voice_app_id: str) -> List[VoiceApp]:
        """Voice apps that send calls straight to the given voice app."""
        referrers: List[VoiceApp] = []
        for app in self.voice_apps():
            if app.id == voice_app_id:
                continue
            for target in self._direct_targets(app.id):
                if (
                    target.type == "ApplicationEndpoint"
                    and self._owners.get(target.id) == voice_app_id
                ):
                    referrers.append(app)
                    break
        return referrers
