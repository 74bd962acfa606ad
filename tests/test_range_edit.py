"""Tests for range edits."""

import pytest

from takelog.exceptions import DuplicateError, InvalidRangeError, ValidationError
from takelog.schemas.take import Classification, LogSheet, RangeSpec, TakeFields
from takelog.services.range_edit import build_range_patches, in_scope


async def seed(engine, project, numbers, scene="1", **fields):
    takes = []
    for n in numbers:
        takes.append(await engine.registry.create(project.id, _fields(scene, n, **fields)))
    return takes


def _fields(scene, take_number, **fields):
    return TakeFields(scene=scene, take_number=take_number, **fields)


class TestBuildRangePatches:
    def test_missing_numbers_are_skipped(self):
        takes = [LogSheet(project_id="p", scene="1", take_number=n) for n in (1, 3, 4, 6)]

        patches = build_range_patches(RangeSpec(field="lens", start=3, end=5), "50mm", takes)

        assert [p.take_number for p in patches] == [3, 4]
        assert patches[0].patch.data == {"lens": "50mm"}

    def test_top_level_field_patches_attribute(self):
        takes = [LogSheet(project_id="p", scene="1", take_number=1)]

        (patch,) = build_range_patches(RangeSpec(field="shot_details", start=1, end=1), "dolly in", takes)

        assert patch.patch.shot_details == "dolly in"
        assert patch.patch.data is None

    def test_disabled_override_mapping(self):
        takes = [LogSheet(project_id="p", scene="1", take_number=n) for n in (1, 2)]

        patches = build_range_patches(
            RangeSpec(field="lens", start=1, end=2),
            "85mm",
            takes,
            disabled_fields={takes[0].id: {"lens"}},
        )

        assert [p.take_id for p in patches] == [takes[1].id]

    def test_scope_filters(self):
        takes = [
            LogSheet(project_id="p", scene="1", take_number=1),
            LogSheet(project_id="p", scene="2", take_number=1),
            LogSheet(project_id="p", scene="1", take_number=1, camera_id=1),
        ]

        scoped = in_scope(takes, RangeSpec(field="lens", start=1, end=1, scene="1", camera_id=0))

        assert scoped == [takes[0]]

    @pytest.mark.parametrize("field", ["take_number", "camera_id", "data"])
    def test_protected_fields_rejected(self, field):
        with pytest.raises(ValidationError):
            build_range_patches(RangeSpec(field=field, start=1, end=1), 5, [])

    def test_end_above_maximum_rejected(self):
        takes = [LogSheet(project_id="p", scene="1", take_number=1)]

        with pytest.raises(InvalidRangeError):
            build_range_patches(
                RangeSpec(field="lens", start=1, end=1_000_000_000), "50mm", takes, max_take_number=9999
            )

    def test_invalid_value_rejected(self):
        with pytest.raises(ValidationError):
            build_range_patches(RangeSpec(field="classification", start=1, end=1), "Blurry", [])


class TestApplyRangeEdit:
    @pytest.mark.asyncio
    async def test_only_existing_numbers_in_range_change(self, engine, project):
        """Takes 1,3,4,6 with range 3..5 updates only 3 and 4."""
        takes = await seed(engine, project, [1, 3, 4, 6])

        updated = await engine.apply_range_edit(RangeSpec(field="lens", start=3, end=5), "50mm", project.id)

        assert [t.take_number for t in updated] == [3, 4]
        lenses = {t.take_number: t.data.get("lens") for t in await engine.list_takes(project.id)}
        assert lenses == {1: None, 3: "50mm", 4: "50mm", 6: None}
        assert all(t.id in {takes[1].id, takes[2].id} for t in updated)

    @pytest.mark.asyncio
    async def test_disabled_field_left_unchanged(self, engine, project):
        await seed(engine, project, [1])
        locked = await engine.registry.create(
            project.id, _fields("1", 2, data={"lens": "24mm"}, disabled_fields={"lens"})
        )

        await engine.apply_range_edit(RangeSpec(field="lens", start=1, end=2), "35mm", project.id)

        stored = await engine.get_take(project.id, locked.id)
        assert stored.data == {"lens": "24mm"}

    @pytest.mark.asyncio
    async def test_classification_range(self, engine, project):
        await seed(engine, project, [1, 2, 3])

        updated = await engine.apply_range_edit(
            RangeSpec(field="classification", start=1, end=2), "Good", project.id
        )

        assert {t.classification for t in updated} == {Classification.GOOD}

    @pytest.mark.asyncio
    async def test_invalid_range_touches_nothing(self, engine, project, store, snapshot):
        await seed(engine, project, [1, 2])
        before = await snapshot(project.id)
        calls = store.save_calls

        with pytest.raises(InvalidRangeError):
            await engine.apply_range_edit(RangeSpec(field="lens", start=5, end=3), "50mm", project.id)

        assert await snapshot(project.id) == before
        assert store.save_calls == calls

    @pytest.mark.asyncio
    async def test_any_conflict_aborts_whole_edit(self, engine, project, snapshot):
        await seed(engine, project, [1, 2], scene="1")
        await seed(engine, project, [2], scene="2")
        before = await snapshot(project.id)

        with pytest.raises(DuplicateError):
            await engine.apply_range_edit(RangeSpec(field="scene", start=1, end=2, scene="1"), "2", project.id)

        assert await snapshot(project.id) == before

    @pytest.mark.asyncio
    async def test_range_beyond_take_limit_rejected(self, engine, project, store):
        await seed(engine, project, [1])
        calls = store.save_calls

        with pytest.raises(InvalidRangeError):
            await engine.apply_range_edit(
                RangeSpec(field="lens", start=1, end=engine.settings.max_take_number + 1), "50mm", project.id
            )

        assert store.save_calls == calls

    @pytest.mark.asyncio
    async def test_empty_range_result(self, engine, project):
        await seed(engine, project, [1])

        assert await engine.apply_range_edit(RangeSpec(field="lens", start=4, end=9), "50mm", project.id) == []
