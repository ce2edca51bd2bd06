import json

import httpx

from emha.domain.ambassadors.roles import AmbassadorRoleRepair

from conftest import make_client

CORRECT = "11111111-1111-4111-8111-111111111111"
WRONG = "22222222-2222-4222-8222-222222222222"
BROKEN = "33333333-3333-4333-8333-333333333333"


def fake_backend():
    state = {"metadata_updates": {}, "users": {}}
    auth_users = {
        CORRECT: {"id": CORRECT, "email": "a@example.com", "user_metadata": {"role": "ambassador"}},
        WRONG: {"id": WRONG, "email": "b@example.com", "user_metadata": {"role": "patient", "tz": "UTC"}},
    }
    profiles = [
        {"id": CORRECT, "full_name": "A", "email": "a@example.com"},
        {"id": WRONG, "full_name": "B", "email": "b@example.com"},
        {"id": BROKEN, "full_name": "C", "email": None},
    ]

    def handler(request):
        path = request.url.path
        if path == "/rest/v1/ambassador_profiles":
            return httpx.Response(200, json=profiles)
        if path.startswith("/auth/v1/admin/users/"):
            user_id = path.rsplit("/", 1)[1]
            if user_id not in auth_users:
                return httpx.Response(404, json={"message": "User not found"})
            if request.method == "PUT":
                state["metadata_updates"][user_id] = json.loads(request.content)["user_metadata"]
            return httpx.Response(200, json=auth_users[user_id])
        if path == "/rest/v1/users":
            record = json.loads(request.content)
            state["users"][record["id"]] = record
            return httpx.Response(201, json=[record])
        return httpx.Response(404, json={"message": "unexpected"})

    return make_client(handler), state


def test_repairs_roles_and_counts():
    client, state = fake_backend()

    stats = AmbassadorRoleRepair(client).run()

    assert stats.total == 3
    assert stats.updated == 1
    assert stats.already_correct == 1
    assert stats.errors == 1


def test_existing_metadata_is_preserved():
    client, state = fake_backend()

    AmbassadorRoleRepair(client).run()

    assert state["metadata_updates"] == {WRONG: {"role": "ambassador", "tz": "UTC"}}


def test_users_rows_are_upserted_with_role():
    client, state = fake_backend()

    AmbassadorRoleRepair(client).run()

    assert set(state["users"]) == {CORRECT, WRONG}
    assert all(row["role"] == "ambassador" for row in state["users"].values())
