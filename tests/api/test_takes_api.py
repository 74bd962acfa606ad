"""
Tests for the take, range edit and resolution endpoints.

Run with: pytest tests/api -v
"""


def save_take(client, project_id, **fields):
    return client.post(f"/api/projects/{project_id}/takes", json=fields)


def take_numbers(client, project_id, scene="1"):
    takes = client.get(f"/api/projects/{project_id}/takes").json()["data"]["takes"]
    return {t["id"]: t["take_number"] for t in takes if t["scene"] == scene}


class TestSaveTake:
    def test_committed_returns_201(self, client, api_project):
        project_id = api_project()

        response = save_take(client, project_id, scene="4", take_number="007", file_number=12)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "committed"
        assert data["take"]["take_number"] == 7
        assert data["take"]["project_id"] == project_id

    def test_list_takes(self, client, api_project):
        project_id = api_project()
        for n in (2, 1):
            save_take(client, project_id, scene="1", take_number=n)

        data = client.get(f"/api/projects/{project_id}/takes").json()["data"]

        assert data["total"] == 2
        assert [t["take_number"] for t in data["takes"]] == [1, 2]

    def test_invalid_body_returns_422(self, client, api_project):
        project_id = api_project()

        response = save_take(client, project_id, scene="1", take_number=0)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_camera(self, client, api_project):
        project_id = api_project()

        response = save_take(client, project_id, scene="1", take_number=1, camera_id=2)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UNKNOWN_CAMERA"

    def test_unknown_project(self, client):
        response = save_take(client, "missing", scene="1", take_number=1)

        assert response.status_code == 404


class TestDuplicateResolution:
    def test_duplicate_then_renumber_forward(self, client, api_project):
        """A new take 1 in front of takes 1 and 2 pushes them to 2 and 3."""
        project_id = api_project()
        first = save_take(client, project_id, scene="1", take_number=1).json()["data"]["take"]
        second = save_take(client, project_id, scene="1", take_number=2).json()["data"]["take"]

        pending = save_take(client, project_id, scene="1", take_number=1)

        assert pending.status_code == 200
        data = pending.json()["data"]
        assert data["status"] == "conflicts_pending"
        assert [c["take_id"] for c in data["conflicts"]["conflicts"]] == [first["id"]]
        assert "renumber_forward" in data["strategies"]

        resolved = client.post(
            f"/api/resolutions/{data['resolution_handle']}", json={"strategy": "renumber_forward"}
        )

        assert resolved.status_code == 201
        committed = resolved.json()["data"]
        assert committed["status"] == "committed"
        assert committed["take"]["take_number"] == 1
        assert take_numbers(client, project_id) == {
            committed["take"]["id"]: 1,
            first["id"]: 2,
            second["id"]: 3,
        }

    def test_cancel_leaves_takes_unchanged(self, client, api_project):
        project_id = api_project()
        save_take(client, project_id, scene="1", take_number=1)
        before = take_numbers(client, project_id)
        handle = save_take(client, project_id, scene="1", take_number=1).json()["data"]["resolution_handle"]

        response = client.post(f"/api/resolutions/{handle}", json={"strategy": "cancel"})

        assert response.status_code == 200
        assert response.json()["data"] == {"status": "cancelled", "resolution_handle": handle}
        assert take_numbers(client, project_id) == before

    def test_handle_is_single_use(self, client, api_project):
        project_id = api_project()
        save_take(client, project_id, scene="1", take_number=1)
        handle = save_take(client, project_id, scene="1", take_number=1).json()["data"]["resolution_handle"]
        client.post(f"/api/resolutions/{handle}", json={"strategy": "overwrite"})

        response = client.post(f"/api/resolutions/{handle}", json={"strategy": "overwrite"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOLUTION_NOT_FOUND"

    def test_unknown_strategy_value(self, client, api_project):
        project_id = api_project()
        save_take(client, project_id, scene="1", take_number=1)
        handle = save_take(client, project_id, scene="1", take_number=1).json()["data"]["resolution_handle"]

        response = client.post(f"/api/resolutions/{handle}", json={"strategy": "merge"})

        assert response.status_code == 422

    def test_strategy_not_offered(self, client, api_project):
        """Swap is only offered when an existing take is edited."""
        project_id = api_project()
        save_take(client, project_id, scene="1", take_number=1)
        handle = save_take(client, project_id, scene="1", take_number=1).json()["data"]["resolution_handle"]

        response = client.post(f"/api/resolutions/{handle}", json={"strategy": "swap"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STRATEGY"

    def test_sound_file_collision_across_scenes(self, client, api_project):
        project_id = api_project()
        first = save_take(client, project_id, scene="1", take_number=1, sound_file_number="S007").json()["data"]

        response = save_take(client, project_id, scene="2", take_number=1, sound_file_number=7)

        assert first["take"]["sound_file_number"] == 7
        data = response.json()["data"]
        assert data["status"] == "conflicts_pending"
        assert data["conflicts"]["conflicts"][0]["kind"] == "sound_file"
        assert data["conflicts"]["conflicts"][0]["take_id"] == first["take"]["id"]


class TestRangeEdit:
    def test_only_existing_numbers_change(self, client, api_project):
        project_id = api_project()
        for n in (1, 3, 4, 6):
            save_take(client, project_id, scene="1", take_number=n)

        response = client.post(
            f"/api/projects/{project_id}/range-edits",
            json={"range": {"field": "lens", "start": 3, "end": 5}, "value": "50mm"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 2
        assert [t["take_number"] for t in data["takes"]] == [3, 4]

    def test_reversed_range_rejected(self, client, api_project):
        project_id = api_project()

        response = client.post(
            f"/api/projects/{project_id}/range-edits",
            json={"range": {"field": "lens", "start": 5, "end": 3}, "value": "50mm"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_RANGE"

    def test_huge_range_rejected(self, client, api_project):
        project_id = api_project()

        response = client.post(
            f"/api/projects/{project_id}/range-edits",
            json={"range": {"field": "lens", "start": 1, "end": 1_000_000_000}, "value": "50mm"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_RANGE"


class TestDeleteTake:
    def test_delete_with_close_gap(self, client, api_project):
        project_id = api_project()
        ids = [save_take(client, project_id, scene="1", take_number=n).json()["data"]["take"]["id"] for n in (1, 2, 3)]

        response = client.delete(f"/api/projects/{project_id}/takes/{ids[1]}", params={"close_gap": "true"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == ids[1]
        assert [t["take_number"] for t in data["renumbered"]] == [2]
        assert take_numbers(client, project_id) == {ids[0]: 1, ids[2]: 2}

    def test_delete_missing_take_is_noop(self, client, api_project):
        project_id = api_project()

        response = client.delete(f"/api/projects/{project_id}/takes/missing")

        assert response.status_code == 200
        assert response.json()["data"]["renumbered"] == []


class TestCameraToggle:
    def test_toggle_one_camera(self, client, api_project):
        project_id = api_project(camera_configuration=3)
        take_id = save_take(client, project_id, scene="1", take_number=1).json()["data"]["take"]["id"]

        response = client.post(f"/api/projects/{project_id}/takes/{take_id}/cameras/2/toggle")

        assert response.status_code == 200
        cameras = response.json()["data"]["cameras"]
        assert cameras["2"]["rolling"] is False
        assert cameras["0"]["rolling"] is True
        assert cameras["1"]["rolling"] is True

    def test_toggle_unknown_camera(self, client, api_project):
        project_id = api_project(camera_configuration=3)
        take_id = save_take(client, project_id, scene="1", take_number=1).json()["data"]["take"]["id"]

        response = client.post(f"/api/projects/{project_id}/takes/{take_id}/cameras/5/toggle")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UNKNOWN_CAMERA"
