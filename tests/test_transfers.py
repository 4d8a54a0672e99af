import pytest

TRANSFER = {
    "sender_full_name": "Rana Reader",
    "sender_id_number": "LB123456",
    "sender_id_picture_url": "https://example.com/id/rana.jpg",
    "sender_phone": "+961 3 123 456",
    "amount": 150,
    "receiver_full_name": "Karim Haddad",
}


def send(client, user, **overrides):
    payload = dict(TRANSFER, **overrides)
    return client.post("/transfers", json=payload, headers=user["headers"])


def test_create_transfer(client, admin, user):
    response = send(client, user)
    assert response.status_code == 201, response.text
    transfer = response.json()
    assert transfer["status"] == "pending"
    assert transfer["transfer_type"] == "local"
    assert transfer["sender_phone"] == "+9613123456"

    notes = client.get("/notifications", headers=admin["headers"]).json()
    assert notes[0]["type"] == "new_transfer"
    assert notes[0]["reference_id"] == transfer["id"]


@pytest.mark.parametrize("overrides", [
    {"sender_phone": "12345"},
    {"sender_phone": "+33612345678"},
    {"amount": 0.5},
    {"sender_id_number": "123"},
    {"receiver_full_name": "K"},
    {"sender_id_picture_url": "not a url"},
])
def test_invalid_transfers(client, user, overrides):
    assert send(client, user, **overrides).status_code == 422


@pytest.mark.parametrize("phone", ["03123456", "96171123456", "+961-71-123-456"])
def test_lebanese_phone_formats(client, user, phone):
    assert send(client, user, sender_phone=phone).status_code == 201


def test_list_own_transfers_newest_first(client, user, other_user):
    send(client, user, amount=10)
    send(client, user, amount=20)
    send(client, other_user, amount=30)

    mine = client.get("/transfers", headers=user["headers"]).json()
    assert [t["amount"] for t in mine] == [20, 10]


def test_admin_completes_transfer_once(client, admin, user):
    transfer = send(client, user).json()
    url = f"/transfers/{transfer['id']}/status"

    assert client.put(url, json={"status": "completed"}, headers=user["headers"]).status_code == 403

    done = client.put(url, json={"status": "completed"}, headers=admin["headers"])
    assert done.status_code == 200
    assert done.json()["status"] == "completed"

    again = client.put(url, json={"status": "declined"}, headers=admin["headers"])
    assert again.status_code == 400

    notes = client.get("/notifications", headers=user["headers"]).json()
    assert [n["type"] for n in notes] == ["transfer_completed"]


def test_admin_declines_and_lists(client, admin, user):
    transfer = send(client, user).json()
    client.put(f"/transfers/{transfer['id']}/status", json={"status": "declined"}, headers=admin["headers"])

    notes = client.get("/notifications", headers=user["headers"]).json()
    assert notes[0]["type"] == "transfer_declined"

    declined = client.get("/admin/transfers", params={"status": "declined"}, headers=admin["headers"]).json()
    assert [t["id"] for t in declined] == [transfer["id"]]


def test_pending_is_not_a_valid_decision(client, admin, user):
    transfer = send(client, user).json()
    response = client.put(
        f"/transfers/{transfer['id']}/status", json={"status": "pending"}, headers=admin["headers"]
    )
    assert response.status_code == 400
