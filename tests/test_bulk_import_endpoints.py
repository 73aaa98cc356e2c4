from social_recipes.app.core.errors import FetchError


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_bulk_import_flow(client, orchestrator, fetcher, user_token):
    fetcher.posts["p2"] = FetchError("post_not_found", "Post p2 not found", status_code=404)

    response = client.post("/imports/bulk", json={"post_ids": ["p1", "p2", "p3"]}, headers=auth(user_token))
    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["total_posts"] == 3
    assert body["message"] == "Import job created for 3 posts"

    orchestrator.wait_for_job(body["job_id"], timeout=30)

    status_response = client.get(f"/imports/{body['job_id']}", headers=auth(user_token))
    assert status_response.status_code == 200
    status = status_response.json()
    assert status["status"] == "COMPLETED_WITH_ERRORS"
    assert status["successful_posts"] == 2
    assert status["failed_posts"] == 1
    assert status["processed_posts"] == 3

    items_response = client.get(f"/imports/{body['job_id']}/items", headers=auth(user_token))
    assert items_response.status_code == 200
    items = items_response.json()
    assert [item["post_id"] for item in items] == ["p1", "p2", "p3"]
    assert items[1]["error_code"] == "post_not_found"
    assert items[1]["result_recipe_id"] is None


def test_bulk_import_empty_list_returns_422(client, user_token):
    response = client.post("/imports/bulk", json={"post_ids": []}, headers=auth(user_token))
    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "validation_error"
    assert body["details"][0]["field"] == "post_ids"


def test_bulk_import_malformed_body_returns_422(client, user_token):
    response = client.post("/imports/bulk", json={"posts": "p1"}, headers=auth(user_token))
    assert response.status_code == 422
    assert response.json()["error_code"] == "validation_error"


def test_job_not_visible_to_other_user(client, orchestrator, user_token, other_user_token):
    response = client.post("/imports/bulk", json={"post_ids": ["p1"]}, headers=auth(user_token))
    job_id = response.json()["job_id"]
    orchestrator.wait_for_job(job_id, timeout=30)

    assert client.get(f"/imports/{job_id}", headers=auth(other_user_token)).status_code == 404
    assert client.get(f"/imports/{job_id}/items", headers=auth(other_user_token)).status_code == 404


def test_unknown_job_returns_404(client, user_token):
    response = client.get("/imports/does-not-exist", headers=auth(user_token))
    assert response.status_code == 404
    assert response.json()["error_code"] == "not_found"


def test_single_import(client, user_token):
    payload = {
        "title": "Pizza",
        "components": [
            {
                "name": "Dough",
                "ingredients": [{"name": "flour", "quantity": 2, "unit": "cup"}],
                "steps": [{"order": 1, "instruction": "Mix"}, {"order": 2, "instruction": "Bake"}],
            }
        ],
    }
    response = client.post("/imports/single", json=payload, headers=auth(user_token))
    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Pizza"
    assert body["user_id"] == "user-1"
    assert body["components"][0]["name"] == "Dough"
    assert [s["step_order"] for s in body["components"][0]["steps"]] == [1, 2]


def test_single_import_reports_all_violations(client, user_token):
    payload = {
        "title": "",
        "components": [
            {
                "name": "Dough",
                "ingredients": [{"name": "flour"}],
                "steps": [{"order": 1, "instruction": "Mix"}, {"order": 1, "instruction": "Bake"}],
            }
        ],
    }
    response = client.post("/imports/single", json=payload, headers=auth(user_token))
    assert response.status_code == 422
    fields = {detail["field"] for detail in response.json()["details"]}
    assert fields == {"title", "components.0.steps.1.order"}


def test_generate_steps_endpoint(client, user_token):
    payload = {"title": "Pancakes", "ingredients": [{"name": "flour"}, {"name": "egg"}]}
    first = client.post("/imports/generate-steps", json=payload, headers=auth(user_token))
    second = client.post("/imports/generate-steps", json=payload, headers=auth(user_token))
    assert first.status_code == 200
    assert first.json() == second.json()
    assert first.json()["steps"][0]["order"] == 1


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
