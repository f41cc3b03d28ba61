from notify import notify


def test_public_profile(client, alice, make_item):
    make_item(alice, title="Listed")
    make_item(alice, title="Waiting", approved=False)

    resp = client.get(f"/api/users/profile/{alice.id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["name"] == "Alice"
    assert body["user"]["items_count"] == 1
    assert "email" not in body["user"]
    assert [item["title"] for item in body["items"]] == ["Listed"]


def test_unknown_profile(client):
    resp = client.get("/api/users/profile/999")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "User not found"


def test_dashboard_stats(client, alice, bob, make_item, auth_header):
    jacket = make_item(alice, points_value=30)
    make_item(alice, approved=False, points_value=20)
    client.post("/api/swaps", json={"itemId": jacket.id, "offeredPoints": 5}, headers=auth_header(bob))

    stats = client.get("/api/users/stats", headers=auth_header(alice)).json()
    assert stats["items"]["total_items"] == 2
    assert stats["items"]["pending_items"] == 1
    assert stats["items"]["total_points_value"] == 50
    assert stats["receivedSwaps"] == {"total_received": 1, "pending_received": 1}

    bob_stats = client.get("/api/users/stats", headers=auth_header(bob)).json()
    assert bob_stats["swaps"]["pending_swaps"] == 1


def test_notifications_inbox(client, session, alice, bob, auth_header):
    first = notify(session, alice.id, "item_approved", "Item Approved", "one")
    notify(session, alice.id, "item_approved", "Item Approved", "two")
    others = notify(session, bob.id, "item_approved", "Item Approved", "not yours")

    resp = client.get("/api/users/notifications", headers=auth_header(alice))
    body = resp.json()
    assert [n["message"] for n in body["notifications"]] == ["two", "one"]
    assert body["pagination"]["totalItems"] == 2

    unread = client.get("/api/users/notifications/unread-count", headers=auth_header(alice))
    assert unread.json() == {"count": 2}

    resp = client.put(f"/api/users/notifications/{first.id}/read", headers=auth_header(alice))
    assert resp.status_code == 200
    unread = client.get("/api/users/notifications/unread-count", headers=auth_header(alice))
    assert unread.json() == {"count": 1}

    resp = client.put(f"/api/users/notifications/{others.id}/read", headers=auth_header(alice))
    assert resp.status_code == 404

    client.put("/api/users/notifications/read-all", headers=auth_header(alice))
    unread = client.get("/api/users/notifications/unread-count", headers=auth_header(alice))
    assert unread.json() == {"count": 0}
    bob_unread = client.get("/api/users/notifications/unread-count", headers=auth_header(bob))
    assert bob_unread.json() == {"count": 1}


def test_point_transactions_name_the_item(client, alice, bob, make_item, auth_header):
    jacket = make_item(alice, title="Denim jacket", points_value=30)
    swap = client.post(
        "/api/swaps", json={"itemId": jacket.id, "offeredPoints": 30}, headers=auth_header(bob)
    ).json()["swap"]
    client.put(f"/api/swaps/{swap['id']}/accept", headers=auth_header(alice))

    body = client.get("/api/users/points/transactions", headers=auth_header(bob)).json()
    [tx] = body["transactions"]
    assert tx["type"] == "spent"
    assert tx["amount"] == 30
    assert tx["item_title"] == "Denim jacket"
    assert body["pagination"]["totalItems"] == 1


def test_user_items_and_swaps(client, alice, bob, make_item, auth_header):
    jacket = make_item(alice, title="Denim jacket")
    make_item(alice, title="Waiting", approved=False)
    client.post("/api/swaps", json={"itemId": jacket.id, "offeredPoints": 10}, headers=auth_header(bob))

    items = client.get(f"/api/users/{alice.id}/items").json()
    assert [item["title"] for item in items["items"]] == ["Denim jacket"]
    assert items["items"][0]["swap_requests"] == 1

    alice_swaps = client.get(f"/api/users/{alice.id}/swaps").json()["swaps"]
    bob_swaps = client.get(f"/api/users/{bob.id}/swaps").json()["swaps"]
    assert alice_swaps[0]["other_user_name"] == "Bob"
    assert bob_swaps[0]["other_user_name"] == "Alice"
