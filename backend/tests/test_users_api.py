def register(client, email: str = "tester@example.com", password: str = "Secret123!", name: str = "Test User"):
    return client.post("/api/users/register", json={"name": name, "email": email, "password": password})


def test_register_login_and_lookup(client) -> None:
    reg_res = register(client)
    assert reg_res.status_code == 201
    user = reg_res.json()["user"]
    assert user["id"] == 1
    assert "password" not in user

    login_res = client.post("/api/users/login", json={"email": "tester@example.com", "password": "Secret123!"})
    assert login_res.status_code == 200
    assert login_res.json()["user"]["email"] == "tester@example.com"

    bad_login = client.post("/api/users/login", json={"email": "tester@example.com", "password": "wrong"})
    assert bad_login.status_code == 401

    get_res = client.get(f"/api/users/{user['id']}")
    assert get_res.status_code == 200
    assert get_res.json()["name"] == "Test User"

    assert client.get("/api/users/42").status_code == 404
    assert len(client.get("/api/users").json()) == 1


def test_duplicate_registration_conflicts(client) -> None:
    assert register(client).status_code == 201
    dup = register(client, name="Someone else")
    assert dup.status_code == 409


def test_check_email_is_case_sensitive(client) -> None:
    register(client)
    assert client.get("/api/users/check-email", params={"email": "tester@example.com"}).json()["exists"] is True
    assert client.get("/api/users/check-email", params={"email": "TESTER@example.com"}).json()["exists"] is False


def test_register_requires_password(client) -> None:
    res = register(client, password="")
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


def test_update_user(client) -> None:
    first = register(client).json()["user"]
    register(client, email="other@example.com")

    res = client.put(
        f"/api/users/{first['id']}",
        json={"name": "Renamed", "email": "renamed@example.com", "password": "NewSecret"},
    )
    assert res.status_code == 200
    assert res.json()["user"]["name"] == "Renamed"
    login = client.post("/api/users/login", json={"email": "renamed@example.com", "password": "NewSecret"})
    assert login.status_code == 200

    conflict = client.put(
        f"/api/users/{first['id']}",
        json={"name": "Renamed", "email": "other@example.com", "password": "x"},
    )
    assert conflict.status_code == 409

    missing = client.put("/api/users/99", json={"name": "Ghost", "email": "ghost@example.com", "password": "x"})
    assert missing.status_code == 404


def test_delete_user_cascades_over_api(client) -> None:
    user = register(client).json()["user"]
    created = client.post(
        "/api/events",
        json={
            "userId": user["id"],
            "title": "Yoga",
            "startDateTime": "2026-03-02T07:00:00",
            "endDateTime": "2026-03-02T08:00:00",
            "recurrentInterval": "1w",
            "recurrentTimes": "3",
        },
    )
    assert created.status_code == 201
    base_id = created.json()["event"]["id"]

    res = client.delete(f"/api/users/{user['id']}")
    assert res.status_code == 200
    assert client.get(f"/api/events/user/{user['id']}").json() == []
    assert client.get(f"/api/recurrent/{base_id}").status_code == 404
    assert client.delete(f"/api/users/{user['id']}").status_code == 404
