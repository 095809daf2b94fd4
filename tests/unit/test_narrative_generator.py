"""Tests for LLM narrative generation."""

from types import SimpleNamespace

import pytest

from housecup.core.config import settings
from housecup.domain.challenge import Narrative
from housecup.services import narrative_generator
from housecup.services.narrative_generator import (
    NarrativeOutput,
    PreviousWeek,
    build_narrative_prompt,
    find_notable_tasks,
    generate_challenge_narrative,
)
from tests.unit.factories import make_challenge, make_task


class FakeAgent:
    """Stands in for the pydantic-ai agent and records prompts."""

    def __init__(self, output=None, error=None, on_run=None):
        self.output = output or NarrativeOutput(headline=" Over by Tuesday ", body="Alex coasted after Monday. ")
        self.error = error
        self.on_run = on_run
        self.prompts = []

    async def run(self, prompt):
        self.prompts.append(prompt)
        if self.on_run is not None:
            await self.on_run()
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output=self.output)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "openrouter_api_key", "test-key")
    monkeypatch.setattr(settings, "enable_llm_narratives", True)


@pytest.fixture
def agent(monkeypatch):
    fake = FakeAgent()
    monkeypatch.setattr(narrative_generator, "get_agent", lambda: fake)
    return fake


@pytest.fixture
async def completed_week(patched_db, household):
    await patched_db.create_record("households", household.to_record())
    await patched_db.create_record(
        "challenges", make_challenge("c1", is_completed=True, winner_id="alex", prize="Dinner out").to_record()
    )
    for task in (
        make_task("2026-01-19", "Dishes", points={"alex": 3}),
        make_task("2026-01-20", "Laundry", points={"sam": 2}),
    ):
        await patched_db.create_record("tasks", task.to_record())
    return patched_db


@pytest.mark.unit
class TestGenerateChallengeNarrative:
    async def test_writes_narrative(self, api_key, agent, completed_week):
        narrative = await generate_challenge_narrative(household_id="house1", challenge_id="c1")

        assert narrative == Narrative(headline="Over by Tuesday", body="Alex coasted after Monday.")
        stored = await completed_week.get_record("challenges", "c1")
        assert stored["narrative"] == {"headline": "Over by Tuesday", "body": "Alex coasted after Monday.", "insightTip": None}
        assert "Result: Alex won" in agent.prompts[0]

    async def test_blank_tip_is_dropped(self, api_key, agent, completed_week):
        agent.output = NarrativeOutput(headline="Laundry day", body="Sam folded.", insight_tip="   ")

        narrative = await generate_challenge_narrative(household_id="house1", challenge_id="c1")

        assert narrative.insight_tip is None

    async def test_skips_without_api_key(self, agent, completed_week):
        assert await generate_challenge_narrative(household_id="house1", challenge_id="c1") is None
        assert agent.prompts == []

    async def test_skips_when_disabled(self, api_key, agent, completed_week, monkeypatch):
        monkeypatch.setattr(settings, "enable_llm_narratives", False)

        assert await generate_challenge_narrative(household_id="house1", challenge_id="c1") is None
        assert agent.prompts == []

    async def test_never_overwrites_existing_narrative(self, api_key, agent, completed_week):
        existing = {"headline": "Kept", "body": "Already here.", "insightTip": None}
        await completed_week.update_record("challenges", "c1", {"narrative": existing})

        assert await generate_challenge_narrative(household_id="house1", challenge_id="c1") is None

        assert agent.prompts == []
        assert (await completed_week.get_record("challenges", "c1"))["narrative"] == existing

    async def test_discards_when_narrative_appears_during_run(self, api_key, agent, completed_week):
        existing = {"headline": "First", "body": "Won the race.", "insightTip": None}

        async def concurrent_write():
            await completed_week.update_record("challenges", "c1", {"narrative": existing})

        agent.on_run = concurrent_write

        assert await generate_challenge_narrative(household_id="house1", challenge_id="c1") is None
        assert (await completed_week.get_record("challenges", "c1"))["narrative"] == existing

    async def test_skips_incomplete_challenge(self, api_key, agent, patched_db, household):
        await patched_db.create_record("households", household.to_record())
        await patched_db.create_record("challenges", make_challenge("c1").to_record())

        assert await generate_challenge_narrative(household_id="house1", challenge_id="c1") is None
        assert agent.prompts == []

    async def test_model_failure_is_swallowed(self, api_key, agent, completed_week):
        agent.error = RuntimeError("Rate limit exceeded")

        assert await generate_challenge_narrative(household_id="house1", challenge_id="c1") is None
        assert (await completed_week.get_record("challenges", "c1"))["narrative"] is None

    async def test_missing_challenge_is_swallowed(self, api_key, agent, patched_db):
        assert await generate_challenge_narrative(household_id="house1", challenge_id="missing") is None


@pytest.mark.unit
class TestPrompt:
    def test_prompt_sections(self, competitors):
        challenge = make_challenge("c1", is_completed=True, winner_id="alex", prize="Dinner out")
        previous = make_challenge(
            "c0",
            "2026-01-11",
            "2026-01-17",
            is_completed=True,
            is_tie=True,
            narrative=Narrative(headline="h", body="b", insight_tip="Try a laundry service."),
        )
        tasks = [
            make_task("2026-01-19", "Dishes", points={"alex": 3}),
            make_task("2026-01-19", "Vacuum", points={"sam": 1}),
            make_task("2026-01-21", "Dishes", points={"alex": 2, "sam": 1}),
        ]

        prompt = build_narrative_prompt(
            challenge=challenge,
            competitors=competitors,
            tasks=tasks,
            previous_weeks=[PreviousWeek(challenge=previous, tasks=[make_task("2026-01-12", challenge_id="c0")])],
        )

        assert "## This Week: 2026-01-18 to 2026-01-24" in prompt
        assert "Prize: Dinner out" in prompt
        assert "Result: Alex won" in prompt
        assert "Total tasks completed: 3" in prompt
        assert "- Alex: 5 points" in prompt
        assert "- Sam: 2 points" in prompt
        assert "2026-01-19: Dishes, Vacuum (Alex: 3, Sam: 1)" in prompt
        assert "None. All tasks this week are consistent with prior weeks." in prompt
        assert '- "Try a laundry service."' in prompt
        assert "2026-01-11 to 2026-01-17: 1 tasks, Alex: 0, Sam: 0 (Tie)" in prompt

    def test_tie_result(self, competitors):
        prompt = build_narrative_prompt(
            challenge=make_challenge(is_completed=True, is_tie=True), competitors=competitors, tasks=[], previous_weeks=[]
        )

        assert "Result: Tie" in prompt
        assert "Previous Weeks" not in prompt
        assert "Previously Given Insight Tips" not in prompt


@pytest.mark.unit
class TestNotableTasks:
    def test_new_task(self):
        tasks = [make_task(f"2026-01-{d}", "Laundry") for d in (19, 20, 21)]

        notable = find_notable_tasks(tasks, [])

        assert [(n.name, n.count, n.context) for n in notable] == [("laundry", 3, "new this week")]

    def test_below_threshold_is_ignored(self):
        tasks = [make_task(f"2026-01-{d}", "Laundry") for d in (19, 20)]
        assert find_notable_tasks(tasks, []) == []

    def test_single_prior_week(self):
        tasks = [make_task(f"2026-01-{d}", "Laundry") for d in (19, 20, 21)]

        notable = find_notable_tasks(tasks, [[make_task("2026-01-12", "laundry")]])

        assert notable[0].context == "only appeared in 1 prior week"

    def test_spike_against_average(self):
        tasks = [make_task(f"2026-01-{d}", "Laundry") for d in (19, 20, 21)]
        previous = [
            [make_task("2026-01-12", "Laundry")],
            [make_task("2026-01-05", "Laundry"), make_task("2026-01-06", "Laundry")],
        ]

        notable = find_notable_tasks(tasks, previous)

        assert notable[0].context == "up from avg 2/week"

    def test_stable_baseline_is_omitted(self):
        tasks = [make_task(f"2026-01-{d}", "Dishes") for d in (19, 20, 21)]
        previous = [[make_task(f"2026-01-{d}", "Dishes") for d in (12, 13, 14)] for _ in range(2)]

        assert find_notable_tasks(tasks, previous) == []

    def test_sorted_by_count(self):
        tasks = [make_task(f"2026-01-{d}", "Laundry") for d in (19, 20, 21)]
        tasks += [make_task(f"2026-01-{d}", "Vacuum") for d in (18, 19, 20, 21)]

        assert [n.name for n in find_notable_tasks(tasks, [])] == ["vacuum", "laundry"]
