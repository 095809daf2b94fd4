"""Tests for the household session adapter."""

from datetime import UTC, datetime

import pytest

from housecup.core import db_client
from housecup.core.db_client import DatabaseError
from housecup.domain.skip_record import SkipRecord
from housecup.services.household_session import HouseholdSession, skip_record_document


# Wednesday 2026-01-21, midday in New York
NOW = datetime(2026, 1, 21, 17, 0, tzinfo=UTC)


@pytest.fixture
def session(household) -> HouseholdSession:
    return HouseholdSession(household)


@pytest.mark.unit
class TestPersistence:
    async def test_start_challenge_persists_challenge_and_tasks(self, patched_db, session):
        session.add_template("Dishes", [1, 2, 3])
        challenge = session.start_challenge(NOW)
        await session.flush()

        stored = await patched_db.get_record("challenges", challenge.id)
        assert stored["startDayKey"] == "2026-01-18"
        assert stored["prize"] == "Winner picks!"
        assert stored["isCompleted"] is False

        tasks = patched_db.records("tasks")
        assert sorted(t["dayKey"] for t in tasks) == ["2026-01-19", "2026-01-20", "2026-01-21"]
        assert all(t["challengeId"] == challenge.id for t in tasks)
        assert [t["name"] for t in patched_db.records("templates")] == ["Dishes"]

    async def test_household_prize_is_used(self, patched_db, household):
        session = HouseholdSession(household.model_copy(update={"prize": "Breakfast in bed"}))

        challenge = session.start_challenge(NOW)
        await session.flush()

        assert challenge.prize == "Breakfast in bed"

    async def test_points_and_deletes_are_written(self, patched_db, session):
        session.add_template("Dishes", [1, 2])
        session.start_challenge(NOW)
        monday, tuesday = session.challenge_state.tasks

        session.set_points(monday.id, "alex", 3)
        skip_record = session.delete_task(tuesday.id)
        await session.flush()

        tasks = patched_db.records("tasks")
        assert [(t["id"], t["points"]) for t in tasks] == [(monday.id, {"alex": 3})]

        skips = patched_db.records("skip_records")
        assert skips == [skip_record_document("house1", skip_record)]
        assert skips[0]["id"] == f"house1:{skip_record.template_id}:2026-01-20"

    async def test_write_failure_sets_error_and_keeps_local_state(self, patched_db, session, monkeypatch):
        session.start_challenge(NOW)
        await session.flush()

        async def failing_replace(*args, **kwargs):
            raise DatabaseError("disk full")

        monkeypatch.setattr("housecup.core.db_client.replace_collection", failing_replace)

        task = session.add_task("Groceries")
        await session.flush()

        assert session.error == "Sync failed: disk full"
        assert session.challenge_state.tasks == [task]

        session.clear_error()
        assert session.error is None

    def test_transitions_work_without_event_loop(self, household):
        session = HouseholdSession(household)

        session.start_challenge(NOW)
        task = session.add_task("Groceries")

        assert session.tasks_for_day("2026-01-21") == [task]


@pytest.mark.unit
class TestRecurringFlows:
    async def test_make_recurring_does_not_duplicate_slot(self, patched_db, session):
        session.start_challenge(NOW)
        session.select_day("2026-01-19")
        task = session.add_task("Water plants")

        template = session.make_recurring(task.id, [1, 4])
        await session.flush()

        monday = session.tasks_for_day("2026-01-19")
        assert [t.id for t in monday] == [task.id]
        assert monday[0].template_id == template.id
        assert [t.name for t in session.tasks_for_day("2026-01-22")] == ["Water plants"]
        assert session.challenge_state.seed_anchor is None
        assert len(patched_db.records("tasks")) == 2

    async def test_update_template_removes_untouched_and_detaches_edited(self, patched_db, session):
        template = session.add_template("Dishes", [1, 2, 3])
        session.start_challenge(NOW)
        tuesday = next(t for t in session.challenge_state.tasks if t.day_key == "2026-01-20")
        session.set_points(tuesday.id, "sam", 2)

        session.update_template(template.id, repeat_days=[3, 5])
        await session.flush()

        by_day = {t.day_key: t for t in session.challenge_state.tasks}
        assert sorted(by_day) == ["2026-01-20", "2026-01-21", "2026-01-23"]
        assert by_day["2026-01-20"].template_id is None
        assert by_day["2026-01-23"].template_id == template.id
        assert SkipRecord(template_id=template.id, day_key="2026-01-20") in session.recurring_state.skip_records
        assert len(patched_db.records("skip_records")) == 1

    async def test_rename_all_renames_template(self, patched_db, session):
        template = session.add_template("Dishes", [1, 2])
        session.start_challenge(NOW)

        session.rename_task(session.challenge_state.tasks[0].id, "Pots", apply_to_all=True)
        await session.flush()

        assert session.recurring_state.templates[0].name == "Pots"
        assert {t["name"] for t in patched_db.records("tasks")} == {"Pots"}
        assert patched_db.records("templates")[0]["id"] == template.id

    async def test_rename_one_day_writes_skip_record(self, patched_db, session):
        session.add_template("Dishes", [1, 2])
        session.start_challenge(NOW)
        monday = session.challenge_state.tasks[0]

        session.rename_task(monday.id, "Pots", apply_to_all=False)
        await session.flush()

        assert session.seed() == []
        assert len(patched_db.records("skip_records")) == 1

    async def test_stop_recurring_task_keeps_points(self, patched_db, session):
        template = session.add_template("Dishes", [0, 1, 2, 3, 4, 5, 6])
        session.start_challenge(NOW)
        by_day = {t.day_key: t for t in session.challenge_state.tasks}
        session.set_points(by_day["2026-01-19"].id, "alex", 1)

        session.stop_recurring_task(template.id, by_day["2026-01-21"].id)
        await session.flush()

        assert [t.day_key for t in session.challenge_state.tasks] == ["2026-01-19"]
        assert patched_db.records("templates") == []
        assert patched_db.records("skip_records") == []

    def test_seed_waits_for_tasks_to_load(self, household):
        session = HouseholdSession(household)
        session.add_template("Dishes", [1])
        session.apply_remote_challenge(session.start_challenge(NOW).model_copy(update={"id": "remote"}))

        assert session.seed() == []

        session.apply_remote_tasks([])
        assert [t.day_key for t in session.seed()] == ["2026-01-19"]


@pytest.mark.unit
class TestSqlitePersistence:
    async def test_back_to_back_edits_store_the_latest_snapshot(self, sqlite_db, household):
        await db_client.create_record(collection="households", data=household.to_record())
        session = HouseholdSession(household)
        session.add_template("Dishes", [1, 2])
        session.start_challenge(NOW)
        await session.flush()
        monday, tuesday = session.challenge_state.tasks

        session.set_points(monday.id, "alex", 3)
        session.delete_task(tuesday.id)
        await session.flush()

        stored = await db_client.list_records(collection="tasks")
        assert [(t["id"], t["points"]) for t in stored] == [(monday.id, {"alex": 3})]

        loaded = await HouseholdSession.load("house1")
        assert [t.id for t in loaded.challenge_state.tasks] == [monday.id]
        assert loaded.seed() == []


@pytest.mark.unit
class TestLoad:
    async def test_load_restores_session(self, patched_db, household):
        original = HouseholdSession(household)
        await patched_db.create_record("households", household.to_record())
        original.add_template("Dishes", [1, 2])
        original.start_challenge(NOW)
        original.delete_task(original.challenge_state.tasks[0].id)
        await original.flush()

        loaded = await HouseholdSession.load("house1")

        assert loaded.challenge_state.challenge.id == original.challenge_state.challenge.id
        assert [t.id for t in loaded.challenge_state.tasks] == [t.id for t in original.challenge_state.tasks]
        assert loaded.recurring_state.skip_records == original.recurring_state.skip_records
        assert [t.name for t in loaded.recurring_state.templates] == ["Dishes"]
        assert loaded.seed() == []

    async def test_change_week_start_day(self, patched_db, household):
        await patched_db.create_record("households", household.to_record())
        session = HouseholdSession(household)
        session.start_challenge(NOW)

        session.change_week_start_day(1, NOW)
        await session.flush()

        challenge = session.challenge_state.challenge
        assert (challenge.start_day_key, challenge.end_day_key) == ("2026-01-19", "2026-01-25")
        assert (await patched_db.get_record("households", "house1"))["weekStartDay"] == 1
        assert (await patched_db.get_record("challenges", challenge.id))["startDayKey"] == "2026-01-19"
