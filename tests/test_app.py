# tests/test_app.py
ADMIN = {"email": "admin@gmail.com", "name": "Admin"}


def sign_in(client, identity=ADMIN):
    response = client.post("/auth/callback", json=identity)
    assert response.status_code == 200
    return response.get_json()


def test_unknown_user_is_sent_to_signup(client):
    body = sign_in(client, {"email": "new@gmail.com", "name": "New"})
    assert body["allowed"] is False
    assert body["redirect"] == "/auth/signup?email=new%40gmail.com"
    assert client.get("/admin/check").status_code == 401


def test_admin_check(client):
    body = sign_in(client)
    assert body["user"]["login_count"] == 1
    assert client.get("/admin/check").get_json() == {"isAdmin": True}

    client.post("/auth/logout")
    assert client.get("/admin/check").status_code == 401


def test_signup_flow_over_http(client):
    response = client.post("/signup", json={"name": "A", "email": "a@gmail.com"})
    assert response.status_code == 201
    request_id = response.get_json()["requestId"]

    assert client.post("/signup", json={"name": "A", "email": "a@gmail.com"}).status_code == 409
    assert client.post("/signup", json={"name": "B", "email": "b@outlook.com"}).status_code == 400
    assert client.get("/signup-requests").status_code == 401

    sign_in(client)
    assert [r["email"] for r in client.get("/signup-requests").get_json()["requests"]] == ["a@gmail.com"]
    approve = {"action": "approve", "requestId": request_id}
    assert client.post("/signup-requests", json=approve).status_code == 200
    assert client.post("/signup-requests", json=approve).status_code == 409
    assert client.post("/signup-requests", json={"action": "maybe", "requestId": request_id}).status_code == 400

    client.post("/auth/logout")
    assert sign_in(client, {"email": "a@gmail.com", "name": "A"})["allowed"] is True
    assert client.get("/admin/check").get_json() == {"isAdmin": False}
    assert client.get("/users").status_code == 403


def test_user_administration(client):
    sign_in(client)
    response = client.post("/users", json={"email": "b@gmail.com", "name": "B"})
    assert response.status_code == 201
    assert client.post("/users", json={"email": "B@gmail.com", "name": "B"}).status_code == 409

    emails = [u["email"] for u in client.get("/users").get_json()["users"]]
    assert emails == ["admin@gmail.com", "b@gmail.com"]

    assert client.delete("/users", json={"email": "admin@gmail.com"}).status_code == 400
    assert client.delete("/users", json={"email": "b@gmail.com"}).status_code == 200
    assert client.delete("/users", json={"email": "b@gmail.com"}).status_code == 404


def test_feedback_endpoints(client):
    submit = {"type": "bug", "area": "editor", "subject": "Typo", "description": "Somewhere"}
    assert client.post("/feedback", json=submit).status_code == 200
    assert client.post("/feedback", json={"type": "bug"}).status_code == 400
    assert client.get("/feedback").status_code == 401

    sign_in(client)
    entries = client.get("/feedback").get_json()["feedback"]
    assert entries[0]["userEmail"] == "Anonymous"
    archive = {"action": "archive", "feedbackId": entries[0]["id"]}
    assert client.put("/feedback", json=archive).status_code == 200
    assert client.get("/feedback").get_json()["feedback"][0]["status"] == "archived"


def test_works_are_gated_on_the_free_plan(client):
    assert client.get("/works").status_code == 401
    sign_in(client)
    for n in range(3):
        assert client.post("/works", json={"title": f"Book {n}"}).status_code == 201

    response = client.post("/works", json={"title": "Book 4"})
    assert response.status_code == 402
    assert response.get_json()["upgrade"] is True

    works = client.get("/works").get_json()
    assert [w["id"] for w in works["books"]] == [1, 2, 3]
    assert works["books"][0]["author"] == "Admin"
    assert works["quickstories"] == []

    assert client.post("/works", json={"title": "x", "kind": "zine"}).status_code == 404
    assert client.post("/works", json={"title": ""}).status_code == 400


def test_work_content_and_delete(client):
    sign_in(client)
    client.post("/works", json={"title": "Notes", "kind": "quickstory"})
    assert client.get("/works/quickstory/1/stories").get_json() == {"items": []}
    assert client.get("/works/quickstory/1/activity").get_json() == {"activity": []}
    assert client.get("/works/quickstory/1/poems").status_code == 404
    assert client.get("/works/quickstory/9/stories").status_code == 404

    assert client.delete("/works/quickstory/1").status_code == 200
    assert client.get("/works").get_json()["quickstories"] == []


def test_export_needs_upgrade(client):
    sign_in(client)
    client.post("/works", json={"title": "Export Me"})
    response = client.get("/works/book/1/export")
    assert response.status_code == 402

    plan = client.put("/plan", json={"action": "upgrade"}).get_json()["plan"]
    assert plan["type"] == "paid"
    assert client.get("/plan").get_json()["paid"] is True

    response = client.get("/works/book/1/export")
    assert response.status_code == 200
    assert response.mimetype.endswith("wordprocessingml.document")
    assert "export me.docx" in response.headers["Content-Disposition"]

    assert client.put("/plan", json={"action": "refund"}).status_code == 400


def test_non_text_json_fields_are_bad_requests(client):
    bad = {"type": 5, "area": "", "subject": "s", "description": "d"}
    assert client.post("/feedback", json=bad).status_code == 400
    assert client.post("/auth/callback", json={"email": 12}).get_json()["allowed"] is False


def test_only_admins_change_plans(client):
    sign_in(client)
    client.post("/users", json={"email": "u@gmail.com", "name": "U"})
    client.post("/auth/logout")

    sign_in(client, {"email": "u@gmail.com", "name": "U"})
    assert client.put("/plan", json={"action": "upgrade"}).status_code == 403
    assert client.put("/plan", json={"action": "cancel", "email": "admin@gmail.com"}).status_code == 403
    assert client.put("/plan", json={"action": "cancel"}).status_code == 200
    client.post("/auth/logout")

    sign_in(client)
    upgrade = {"action": "upgrade", "email": "u@gmail.com"}
    assert client.put("/plan", json=upgrade).get_json()["plan"]["type"] == "paid"
    client.post("/auth/logout")

    sign_in(client, {"email": "u@gmail.com", "name": "U"})
    assert client.get("/plan").get_json()["paid"] is True
