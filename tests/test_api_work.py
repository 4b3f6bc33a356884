"""
Construction Budget Engine
Tests — Works, tasks, records and weekly planning API.
"""


def _post(client, url, payload=None):
    return client.post(url, json=payload or {})


class TestWorks:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_create_list_update_delete(self, client):
        res = _post(client, "/api/v1/works", {"name": "Edifício Aurora", "client": "Aurora SA"})
        assert res.status_code == 201
        work = res.get_json()
        assert work["progress_method"] == "STAGES"
        assert work["budget"] == 0

        listed = client.get("/api/v1/works").get_json()
        assert listed["total"] == 1

        res = client.put(f"/api/v1/works/{work['id']}", json={"address": "Rua 1"})
        assert res.get_json()["address"] == "Rua 1"

        assert client.delete(f"/api/v1/works/{work['id']}").status_code == 200
        assert client.get(f"/api/v1/works/{work['id']}").status_code == 404

    def test_name_required(self, client):
        res = _post(client, "/api/v1/works", {"client": "x"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"name": "required"}

    def test_invalid_progress_method(self, client):
        res = _post(client, "/api/v1/works", {"name": "x", "progress_method": "MONEY"})
        assert res.status_code == 422

    def test_non_json_body_rejected(self, client):
        res = client.post("/api/v1/works", data="name=x", content_type="text/plain")
        assert res.status_code == 415


class TestStagesAndTasks:
    def test_stage_cycles_through_statuses(self, client, work):
        base = f"/api/v1/works/{work.id}"
        stage = _post(client, f"{base}/stages", {"name": "Foundation"}).get_json()
        statuses = [_post(client, f"{base}/stages/{stage['id']}/cycle").get_json()["status"]
                    for _ in range(3)]
        assert statuses == ["IN_PROGRESS", "COMPLETED", "PENDING"]

    def test_task_done_sets_completed_date(self, client, work):
        base = f"/api/v1/works/{work.id}"
        task = _post(client, f"{base}/tasks", {"title": "Dig"}).get_json()
        assert task["completed_date"] is None

        done = client.put(f"{base}/tasks/{task['id']}", json={"status": "DONE"}).get_json()
        assert done["completed_date"] is not None
        reopened = client.put(f"{base}/tasks/{task['id']}", json={"status": "EXECUTION"}).get_json()
        assert reopened["completed_date"] is None

    def test_task_physical_progress_range(self, client, work):
        res = _post(client, f"/api/v1/works/{work.id}/tasks", {"title": "Dig", "physical_progress": 140})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RANGE"

    def test_task_of_other_work_is_404(self, client, work):
        other = _post(client, "/api/v1/works", {"name": "Other"}).get_json()
        task = _post(client, f"/api/v1/works/{other['id']}/tasks", {"title": "Elsewhere"}).get_json()
        res = client.put(f"/api/v1/works/{work.id}/tasks/{task['id']}", json={"title": "Mine"})
        assert res.status_code == 404

    def test_financial_record_validation(self, client, work):
        base = f"/api/v1/works/{work.id}"
        assert _post(client, f"{base}/financial-records", {"type": "GIFT", "amount": 1}).status_code == 422
        record = _post(client, f"{base}/financial-records", {"amount": 120.5}).get_json()
        assert record["type"] == "EXPENSE"
        assert record["status"] == "PENDING"
        assert client.delete(f"{base}/financial-records/{record['id']}").status_code == 200
        assert client.get(f"{base}/financial-records").get_json()["total"] == 0


class TestWeeklyPlanning:
    def test_plan_week_and_carry_over(self, client, work):
        base = f"/api/v1/works/{work.id}"
        cid = _post(client, f"{base}/budget/categories", {"name": "Masonry"}).get_json()["categories"][0]["id"]

        res = _post(client, f"{base}/planning/2024-W10/tasks", {"title": "Walls", "stage_id": cid})
        assert res.status_code == 201

        view = client.get(f"{base}/planning/2024-W11").get_json()
        assert view["start"] == "2024-03-11"
        assert len(view["overdue"]) == 1

        res = _post(client, f"{base}/planning/2024-W11/carry-over")
        assert res.get_json()["total"] == 1
        view = client.get(f"{base}/planning/2024-W11").get_json()
        assert view["total"] == 1
        assert view["overdue"] == []

    def test_weekly_task_requires_category(self, client, work):
        res = _post(client, f"/api/v1/works/{work.id}/planning/2024-W10/tasks", {"title": "Walls"})
        assert res.status_code == 422

    def test_invalid_week(self, client, work):
        res = client.get(f"/api/v1/works/{work.id}/planning/2024-10")
        assert res.status_code == 422

    def test_current_week_default(self, client, work):
        res = client.get(f"/api/v1/works/{work.id}/planning")
        assert res.status_code == 200
        assert "-W" in res.get_json()["week"]
