def register(client, email="ana@example.com", username="ana", password="Secret123!"):
    return client.post("/user/register", json={"email": email, "username": username, "password": password})


def test_register_and_login(auth_client):
    response = register(auth_client)
    assert response.status_code == 200
    assert response.json()["username"] == "ana"

    login = auth_client.post("/user/login", json={"email": "ana@example.com", "password": "Secret123!"})
    assert login.status_code == 200
    assert "access_token" in login.cookies

    me = auth_client.get("/user/me")
    assert me.status_code == 200
    assert me.json()["email"] == "ana@example.com"


def test_signed_in_user_owns_new_decks(auth_client):
    register(auth_client)
    auth_client.post("/user/login", json={"email": "ana@example.com", "password": "Secret123!"})

    created = auth_client.post("/decks", json={"name": "Mine"})

    assert created.status_code == 201
    assert [d["name"] for d in auth_client.get("/decks").json()] == ["Mine"]


def test_register_rejects_duplicates(auth_client):
    register(auth_client)

    assert register(auth_client, username="other").json()["detail"] == "Email already registered"
    assert register(auth_client, email="x@example.com").json()["detail"] == "Username already taken"


def test_register_rejects_weak_password(auth_client):
    response = register(auth_client, password="short")

    assert response.status_code == 422
    assert response.json()["error"] == "validation_failed"
    assert "password" in response.json()["details"]


def test_login_with_wrong_password(auth_client):
    register(auth_client)

    response = auth_client.post("/user/login", json={"email": "ana@example.com", "password": "Wrong1234!"})

    assert response.status_code == 401


def test_anonymous_requests(auth_client):
    assert auth_client.get("/user/me").status_code == 401
    response = auth_client.post("/decks", json={"name": "Nope"})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
