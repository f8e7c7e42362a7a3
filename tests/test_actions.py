from datetime import date

import pytest

from lifetwin.autonomy.types import AutonomySettings, GateDecision
from lifetwin.core.actions import (
    ActionBuilder,
    ActionType,
    extract_due_date,
    extract_duration,
    extract_event_title,
    extract_message_content,
    extract_organization_criteria,
    extract_people,
    extract_priority,
)
from lifetwin.core.context import default_user_context

pytestmark = pytest.mark.asyncio


@pytest.fixture
def builder(gate):
    return ActionBuilder(gate)


@pytest.fixture
def context():
    return default_user_context("u1")


async def test_low_scheduling_autonomy_withholds_the_action(builder, context):
    query = "schedule a meeting with Sarah tomorrow"
    assert builder.schedule(query, context, AutonomySettings(scheduling=20)) is None
    assert builder.determine_actions(query, context, AutonomySettings(scheduling=20)) == []


async def test_mid_scheduling_autonomy_requires_approval(builder, context):
    action = builder.schedule("Schedule a meeting with Sarah for 2 hours", context, AutonomySettings(scheduling=50))

    assert action.type is ActionType.SCHEDULE
    assert action.module == "household"
    assert action.requires_approval
    assert action.approval_reason == "User prefers approval for scheduling"
    assert action.data == {"title": "a meeting with", "duration": 120, "participants": ["sarah"]}
    assert action.people_affected == ["sarah"]
    assert action.gate.decision is GateDecision.APPROVAL


async def test_high_scheduling_autonomy_runs_autonomously(builder, context):
    action = builder.schedule("schedule lunch", context, AutonomySettings(scheduling=80))
    assert not action.requires_approval
    assert action.approval_reason is None
    assert action.data["duration"] == 60


async def test_default_settings_analysis_is_autonomous(builder, context):
    actions = builder.determine_actions("analyze my productivity", context, AutonomySettings())

    assert len(actions) == 1
    assert actions[0].type is ActionType.ANALYZE
    assert actions[0].data == {"type": "insight_generation", "scope": "productivity"}
    assert not actions[0].requires_approval


async def test_task_trigger_prefers_prioritization(builder, context):
    context.current_focus.dashboard_id = "dash-1"
    settings = AutonomySettings(task_creation=50)

    bulk = builder.determine_actions("prioritize all my tasks", context, settings)
    single = builder.determine_actions("remind me to call the bank tomorrow", context, settings)

    assert bulk[0].data["action"] == "bulk_prioritize"
    assert bulk[0].data["dashboard_id"] == "dash-1"
    assert bulk[0].requires_approval
    assert single[0].type is ActionType.CREATE
    assert single[0].module == "todo"


async def test_several_triggers_build_several_actions(builder, context):
    settings = AutonomySettings(scheduling=90, communication=90, file_management=90)
    actions = builder.determine_actions("schedule a review then message john and organize the folder", context, settings)

    assert [a.type for a in actions] == [ActionType.SCHEDULE, ActionType.COMMUNICATE, ActionType.ORGANIZE]
    assert all(not a.requires_approval for a in actions)
    assert len({a.id for a in actions}) == 3


async def test_communication_below_floor_is_withheld(builder, context):
    assert builder.communicate("message john", context, AutonomySettings()) is None


async def test_extraction_helpers():
    assert extract_event_title("Please Schedule team sync on Friday") == "team sync on"
    assert extract_event_title("lunch") == "New Event"
    assert extract_duration("block 30 min") == 30
    assert extract_duration("no time given") is None
    assert extract_people("Tell Mike and Jane") == ["mike", "jane"]
    assert extract_message_content("send hello to everyone") == "hello to everyone"
    assert extract_organization_criteria("sort by project") == "by_project"
    assert extract_priority("URGENT fix") == "HIGH"
    assert extract_priority("later") == "MEDIUM"
    assert extract_due_date("due tomorrow", today=date(2024, 3, 31)) == "2024-04-01"
    assert extract_due_date("someday") is None


async def test_action_to_dict(builder, context):
    action = builder.organize("organize files by date", context, AutonomySettings(file_management=60))
    data = action.to_dict()
    assert data["type"] == "organize"
    assert data["data"]["criteria"] == "by_date"
    assert data["gate"].startswith("[APPROVAL]")
