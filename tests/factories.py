"""Raw Teams payloads and a mocked TeamsClient for the tests."""

from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from models import (
    GraphDirectoryObject,
    TeamsAutoAttendant,
    TeamsCallQueue,
    TeamsResourceAccount,
)
from teams_client import TeamsClient


def find_node(fragment, node_id: str):
    return next((n for n in fragment.nodes() if n.id == node_id), None)

ALWAYS_OPEN = [{"Start": "00:00:00", "End": "1.00:00:00"}]


def account(object_id: str, number: Optional[str] = None, name: str = "") -> dict:
    return {"ObjectId": object_id, "DisplayName": name or object_id, "PhoneNumber": number}


def target(type_: str, id_: str) -> dict:
    return {"Id": id_, "Type": type_}


def transfer_flow(call_target: dict, flow_id: str = "cf-default", greeting: str = "Welcome") -> dict:
    return {
        "Id": flow_id,
        "Name": flow_id,
        "Greetings": [{"ActiveType": "TextToSpeech", "TextToSpeechPrompt": greeting}],
        "Menu": {
            "MenuOptions": [
                {
                    "Action": "TransferCallToTarget",
                    "DtmfResponse": "Automatic",
                    "CallTarget": call_target,
                }
            ]
        },
    }


def disconnect_flow(flow_id: str) -> dict:
    return {"Id": flow_id, "Name": flow_id, "Greetings": [], "Menu": {"MenuOptions": []}}


def menu_flow(flow_id: str, options: List[dict]) -> dict:
    return {
        "Id": flow_id,
        "Name": flow_id,
        "Greetings": [],
        "Menu": {
            "Prompts": [{"ActiveType": "TextToSpeech", "TextToSpeechPrompt": "Press 1 for sales"}],
            "MenuOptions": options,
        },
    }


def weekly_schedule(schedule_id: str, hours: Dict[str, list], complement: bool = False) -> dict:
    recurrence = {f"{day}Hours": ranges for day, ranges in hours.items()}
    recurrence["ComplementEnabled"] = complement
    return {
        "Id": schedule_id,
        "Name": schedule_id,
        "Type": "WeeklyRecurrence",
        "WeeklyRecurrentSchedule": recurrence,
    }


def always_open_schedule(schedule_id: str = "sched-24h") -> dict:
    days = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
    return weekly_schedule(schedule_id, {d: ALWAYS_OPEN for d in days}, complement=True)


def holiday_schedule(schedule_id: str, name: str, start: str, end: str) -> dict:
    return {
        "Id": schedule_id,
        "Name": name,
        "Type": "Fixed",
        "FixedSchedule": {"DateTimeRanges": [{"Start": start, "End": end}]},
    }


def auto_attendant(
    identity: str,
    name: str,
    accounts: List[str],
    default_flow: dict,
    call_flows: Optional[List[dict]] = None,
    schedules: Optional[List[dict]] = None,
    associations: Optional[List[dict]] = None,
    operator: Optional[dict] = None,
) -> dict:
    return {
        "Identity": identity,
        "Name": name,
        "TimeZoneId": "Pacific Standard Time",
        "LanguageId": "en-US",
        "ApplicationInstances": accounts,
        "DefaultCallFlow": default_flow,
        "CallFlows": call_flows or [],
        "Schedules": schedules or [],
        "CallHandlingAssociations": associations or [],
        "Operator": operator,
    }


def call_queue(identity: str, name: str, accounts: List[str], **fields) -> dict:
    raw = {
        "Identity": identity,
        "Name": name,
        "ApplicationInstances": accounts,
        "RoutingMethod": "Attendant",
        "AgentAlertTime": 30,
        "OverflowThreshold": 50,
        "OverflowAction": "DisconnectWithBusy",
        "TimeoutThreshold": 1200,
        "TimeoutAction": "Disconnect",
        "Agents": [],
    }
    raw.update(fields)
    return raw


def make_client(
    auto_attendants: List[dict] = (),
    call_queues: List[dict] = (),
    accounts: List[dict] = (),
    users: Optional[Dict[str, str]] = None,
    groups: Optional[Dict[str, str]] = None,
    channels: Optional[Dict[str, str]] = None,
):
    users, groups, channels = users or {}, groups or {}, channels or {}

    def directory(names):
        async def lookup(*keys):
            key = "/".join(keys)
            if key not in names:
                return None
            return GraphDirectoryObject(id=key, displayName=names[key])

        return lookup

    client = MagicMock(spec=TeamsClient)
    client.get_resource_accounts = AsyncMock(
        return_value=[TeamsResourceAccount.model_validate(a) for a in accounts]
    )
    client.get_auto_attendants = AsyncMock(
        return_value=[TeamsAutoAttendant.model_validate(a) for a in auto_attendants]
    )
    client.get_call_queues = AsyncMock(
        return_value=[TeamsCallQueue.model_validate(q) for q in call_queues]
    )
    client.get_auto_attendant = AsyncMock(return_value=None)
    client.get_call_queue = AsyncMock(return_value=None)
    client.get_user = AsyncMock(side_effect=directory(users))
    client.get_group = AsyncMock(side_effect=directory(groups))
    client.get_channel = AsyncMock(side_effect=directory(channels))
    return client
