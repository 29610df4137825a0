"""Tests for famcoins.core.materializer — draft to persisted rows, atomically.

Default draft (see conftest.make_draft): weekly from Mon Jan 1 2024, so the
window is Jan 1..Jan 8 inclusive, with budget 100 FAMCOINS and
    Mornings {Mon, Wed, Fri}: bed, teeth -> 4 dates x 2 tasks = 8 completions
    Weekend  {Sat, Sun}:      dishes     -> 2 dates x 1 task  = 2 completions
Estimated completions are 2*3 + 1*2 = 8, so each is worth 100 // 8 = 12.
"""

import asyncio
from collections import Counter
from datetime import date

import pytest

from famcoins.adapters.template_catalog import StoreTemplateCatalog
from famcoins.core.currency import RemainderPolicy
from famcoins.core.errors import NotFoundError, PersistenceError, ValidationError
from famcoins.core.materializer import Create, SequenceMaterializer, Update
from famcoins.ports.record_store import StoreError


def _fail_on(store, monkeypatch, table, exc):
    """Make store.insert_many raise ``exc`` for ``table``."""
    original = store.insert_many

    async def failing(target, rows):
        if target == table:
            raise exc
        return await original(target, rows)

    monkeypatch.setattr(store, "insert_many", failing)


async def _counts(store):
    return {
        table: len(await store.select(table))
        for table in ("sequences", "groups", "task_instances", "task_completions")
    }


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreate:
    @pytest.mark.asyncio
    async def test_sequence_row(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        [seq] = await store.select("sequences", {"id": sequence_id})
        assert seq["name"] == "Week of Jan 1 - Jan 7"
        assert seq["type"] == "weekly"
        assert seq["start_date"] == "2024-01-01"
        assert seq["end_date"] == "2024-01-08"
        assert seq["budget_famcoins"] == 100
        assert seq["status"] == "active"
        assert seq["child_id"] == "child-1"
        assert seq["parent_id"] == "parent-1"

    @pytest.mark.asyncio
    async def test_one_instance_per_group_task_pair(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        instances = await store.select("task_instances", {"sequence_id": sequence_id})
        assert len(instances) == 3
        assert sorted(i["template_id"] for i in instances) == ["tpl-bed", "tpl-dishes", "tpl-teeth"]
        assert {i["famcoin_value"] for i in instances} == {12}

    @pytest.mark.asyncio
    async def test_completions_per_group(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        groups = {g["id"]: g["name"] for g in await store.select("groups", {"sequence_id": sequence_id})}
        instances = {
            i["id"]: groups[i["group_id"]]
            for i in await store.select("task_instances", {"sequence_id": sequence_id})
        }
        completions = await store.select("task_completions")
        per_group = Counter(instances[c["task_instance_id"]] for c in completions)
        assert per_group == {"Mornings": 8, "Weekend": 2}
        weekend_dates = sorted(
            c["due_date"] for c in completions if instances[c["task_instance_id"]] == "Weekend"
        )
        assert weekend_dates == ["2024-01-06", "2024-01-07"]
        assert {c["status"] for c in completions} == {"pending"}
        assert {c["child_id"] for c in completions} == {"child-1"}

    @pytest.mark.asyncio
    async def test_groups_keep_draft_order(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        groups = await store.select("groups", {"sequence_id": sequence_id}, order_by="position")
        assert [(g["name"], g["position"]) for g in groups] == [("Mornings", 0), ("Weekend", 1)]
        assert groups[0]["active_days"] == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_template_fields_copied(self, store, materializer, make_draft):
        draft = make_draft(groups={"Homework": ([1], ["tpl-homework"])})
        sequence_id = await materializer.materialize(draft, Create())
        [instance] = await store.select("task_instances", {"sequence_id": sequence_id})
        assert instance["photo_proof_required"] is True
        assert instance["effort_score"] == 3
        assert instance["is_bonus_task"] is False

    @pytest.mark.asyncio
    async def test_monthly_from_jan_31_leap_year(self, store, materializer, make_draft):
        draft = make_draft(
            period="monthly", start=date(2024, 1, 31),
            groups={"Daily": ([1, 2, 3, 4, 5, 6, 7], ["tpl-bed"])},
        )
        sequence_id = await materializer.materialize(draft, Create())
        [seq] = await store.select("sequences", {"id": sequence_id})
        assert seq["end_date"] == "2024-02-29"
        assert seq["name"] == "Month of January 2024"
        completions = await store.select("task_completions")
        assert len(completions) == 30
        # 7 days x 4.34 weeks = 30.38 -> 30 estimated, 100 // 30 = 3
        [instance] = await store.select("task_instances")
        assert instance["famcoin_value"] == 3

    @pytest.mark.asyncio
    async def test_ongoing_keeps_base_period(self, store, materializer, make_draft):
        draft = make_draft(ongoing=True, groups={"Sundays": ([7], ["tpl-dishes"])})
        sequence_id = await materializer.materialize(draft, Create())
        [seq] = await store.select("sequences", {"id": sequence_id})
        assert seq["type"] == "weekly"
        assert seq["is_ongoing"] is True
        assert seq["end_date"] == "2034-01-01"
        assert seq["name"] == "Ongoing from Jan 1"
        # one task on one day per week: the whole budget goes to each completion
        [instance] = await store.select("task_instances")
        assert instance["famcoin_value"] == 100

    @pytest.mark.asyncio
    async def test_budget_famcoins_derived_when_missing(self, store, materializer, make_draft):
        draft = make_draft(budget=7.5)
        draft.settings.budget_famcoins = None
        sequence_id = await materializer.materialize(draft, Create())
        [seq] = await store.select("sequences", {"id": sequence_id})
        assert seq["budget_famcoins"] == 75


# ---------------------------------------------------------------------------
# Remainder policy
# ---------------------------------------------------------------------------


class TestRemainderPolicy:
    @pytest.mark.asyncio
    async def test_unallocated_has_no_bonus(self, store, materializer, make_draft):
        await materializer.materialize(make_draft(), Create())
        completions = await store.select("task_completions")
        assert sum(c["famcoin_bonus"] for c in completions) == 0

    @pytest.mark.asyncio
    async def test_first_completions_get_remainder(self, store, make_draft):
        materializer = SequenceMaterializer(
            store, StoreTemplateCatalog(store),
            conversion_rate=10, monthly_weeks=4.34, ongoing_years=10,
            remainder_policy=RemainderPolicy.FIRST_COMPLETIONS,
        )
        await materializer.materialize(make_draft(), Create())
        completions = await store.select("task_completions")
        bonus = [c for c in completions if c["famcoin_bonus"]]
        # 100 - 8 * 12 = 4 extra coins, earliest due dates first
        assert len(bonus) == 4
        assert {c["due_date"] for c in bonus} == {"2024-01-01", "2024-01-03"}


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_replaces_contents(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        edited = make_draft(budget=5.0, groups={"Tuesdays": ([2], ["tpl-homework"])})
        result = await materializer.materialize(edited, Update(sequence_id))

        assert result == sequence_id
        assert await _counts(store) == {
            "sequences": 1, "groups": 1, "task_instances": 1, "task_completions": 1,
        }
        [seq] = await store.select("sequences")
        assert seq["budget_famcoins"] == 50
        [completion] = await store.select("task_completions")
        assert completion["due_date"] == "2024-01-02"
        [instance] = await store.select("task_instances")
        assert instance["famcoin_value"] == 50

    @pytest.mark.asyncio
    async def test_update_twice_is_stable(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        await materializer.materialize(make_draft(), Update(sequence_id))
        await materializer.materialize(make_draft(), Update(sequence_id))
        assert await _counts(store) == {
            "sequences": 1, "groups": 2, "task_instances": 3, "task_completions": 10,
        }

    @pytest.mark.asyncio
    async def test_update_leaves_other_sequences_alone(self, store, materializer, make_draft):
        other = await materializer.materialize(make_draft(child_id="child-2"), Create())
        sequence_id = await materializer.materialize(make_draft(), Create())
        await materializer.materialize(
            make_draft(groups={"One": ([1], ["tpl-bed"])}), Update(sequence_id),
        )
        assert len(await store.select("groups", {"sequence_id": other})) == 2

    @pytest.mark.asyncio
    async def test_update_missing_sequence(self, store, materializer, make_draft):
        with pytest.raises(NotFoundError):
            await materializer.materialize(make_draft(), Update("missing"))
        assert (await _counts(store))["groups"] == 0

    @pytest.mark.asyncio
    async def test_update_cannot_change_child(self, store, materializer, make_draft):
        sequence_id = await materializer.materialize(make_draft(), Create())
        with pytest.raises(ValidationError, match="cannot be changed"):
            await materializer.materialize(make_draft(child_id="child-2"), Update(sequence_id))
        assert await _counts(store) == {
            "sequences": 1, "groups": 2, "task_instances": 3, "task_completions": 10,
        }
        [seq] = await store.select("sequences")
        assert seq["child_id"] == "child-1"
        assert {c["child_id"] for c in await store.select("task_completions")} == {"child-1"}


# ---------------------------------------------------------------------------
# Failures leave nothing behind
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_invalid_draft_writes_nothing(self, store, materializer, make_draft):
        draft = make_draft(child_id=None)
        with pytest.raises(ValidationError, match="Please select a child"):
            await materializer.materialize(draft, Create())
        assert (await _counts(store))["sequences"] == 0

    @pytest.mark.asyncio
    async def test_missing_template(self, store, materializer, make_draft):
        draft = make_draft(groups={"G": ([1], ["tpl-bed", "tpl-gone"])})
        with pytest.raises(NotFoundError) as exc_info:
            await materializer.materialize(draft, Create())
        assert exc_info.value.identifier == ["tpl-gone"]
        assert (await _counts(store))["sequences"] == 0

    @pytest.mark.asyncio
    async def test_unknown_period_is_a_validation_error(self, store, materializer, make_draft):
        draft = make_draft()
        draft.settings.period = "yearly"
        with pytest.raises(ValidationError, match="Unknown period 'yearly'"):
            await materializer.materialize(draft, Create())
        assert (await _counts(store))["sequences"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("table", ["groups", "task_instances", "task_completions"])
    async def test_create_failure_rolls_back(self, store, materializer, make_draft, monkeypatch, table):
        _fail_on(store, monkeypatch, table, StoreError("disk full"))
        with pytest.raises(PersistenceError) as exc_info:
            await materializer.materialize(make_draft(), Create())
        assert exc_info.value.step == table
        assert await _counts(store) == {
            "sequences": 0, "groups": 0, "task_instances": 0, "task_completions": 0,
        }

    @pytest.mark.asyncio
    async def test_update_failure_keeps_previous_contents(self, store, materializer, make_draft, monkeypatch):
        sequence_id = await materializer.materialize(make_draft(), Create())
        _fail_on(store, monkeypatch, "task_instances", StoreError("disk full"))
        with pytest.raises(PersistenceError):
            await materializer.materialize(
                make_draft(groups={"One": ([1], ["tpl-bed"])}), Update(sequence_id),
            )
        assert await _counts(store) == {
            "sequences": 1, "groups": 2, "task_instances": 3, "task_completions": 10,
        }

    @pytest.mark.asyncio
    async def test_cancelled_update_keeps_previous_contents(self, store, materializer, make_draft, monkeypatch):
        sequence_id = await materializer.materialize(make_draft(), Create())
        _fail_on(store, monkeypatch, "task_completions", asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await materializer.materialize(make_draft(), Update(sequence_id))
        assert await _counts(store) == {
            "sequences": 1, "groups": 2, "task_instances": 3, "task_completions": 10,
        }
