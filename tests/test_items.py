from sqlmodel import select

from models import Item, ItemCondition


def test_catalog_hides_unapproved_and_unavailable(client, alice, make_item):
    make_item(alice, title="Listed")
    make_item(alice, title="Waiting", approved=False)
    make_item(alice, title="Gone", is_available=False)

    resp = client.get("/api/items")
    assert resp.status_code == 200
    titles = [item["title"] for item in resp.json()["items"]]
    assert titles == ["Listed"]
    assert resp.json()["pagination"]["totalItems"] == 1


def test_catalog_filters_narrow_results(client, alice, make_item):
    make_item(alice, title="Cheap tee", points_value=10)
    make_item(alice, title="Linen shirt", points_value=40)
    make_item(alice, title="Wool coat", points_value=150)
    make_item(alice, title="Chinos", points_value=60, category="Bottoms")

    resp = client.get(
        "/api/items", params={"category": "Tops", "minPoints": 20, "maxPoints": 100}
    )
    assert resp.status_code == 200
    items = resp.json()["items"]
    assert [item["title"] for item in items] == ["Linen shirt"]
    for item in items:
        assert item["category"] == "Tops"
        assert 20 <= item["points_value"] <= 100
        assert item["is_approved"] and item["is_available"]


def test_catalog_search_matches_tags_and_description(client, alice, make_item):
    make_item(alice, title="Plain top", tags=["vintage"])
    make_item(alice, title="Jacket", description="A VINTAGE bomber", tags=[])
    make_item(alice, title="Modern tee", tags=["new"])

    resp = client.get("/api/items", params={"search": "vintage", "sortBy": "title", "sortOrder": "asc"})
    assert [item["title"] for item in resp.json()["items"]] == ["Jacket", "Plain top"]


def test_catalog_pagination_and_sorting(client, alice, make_item):
    for points in (10, 20, 30, 40, 50):
        make_item(alice, title=f"Item {points}", points_value=points)

    resp = client.get(
        "/api/items",
        params={"sortBy": "points_value", "sortOrder": "asc", "limit": 2, "page": 2},
    )
    body = resp.json()
    assert [item["points_value"] for item in body["items"]] == [30, 40]
    assert body["pagination"] == {
        "currentPage": 2,
        "totalPages": 3,
        "totalItems": 5,
        "hasNext": True,
        "hasPrev": True,
    }


def test_catalog_rejects_unknown_sort_field(client):
    resp = client.get("/api/items", params={"sortBy": "password_hash"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Validation failed"


def test_catalog_counts_pending_requests(client, session, alice, bob, make_item, auth_header):
    item = make_item(alice)
    client.post("/api/swaps", json={"itemId": item.id, "offeredPoints": 10}, headers=auth_header(bob))

    entry = client.get("/api/items").json()["items"][0]
    assert entry["swap_requests"] == 1
    assert entry["uploader_name"] == "Alice"


def test_categories_list(client, alice, make_item):
    make_item(alice, category="Tops", type="Shirt")
    make_item(alice, category="Tops", type="Jacket")
    make_item(alice, category="Shoes", type="Sneakers")
    make_item(alice, category="Hidden", type="Hat", approved=False)

    categories = client.get("/api/items/categories/list").json()["categories"]
    assert categories == {"Shoes": ["Sneakers"], "Tops": ["Jacket", "Shirt"]}


def test_item_detail_can_swap(client, alice, bob, make_item, auth_header):
    item = make_item(alice)

    anonymous = client.get(f"/api/items/{item.id}").json()["item"]
    assert anonymous["canSwap"] is False
    assert anonymous["uploader_name"] == "Alice"

    as_owner = client.get(f"/api/items/{item.id}", headers=auth_header(alice)).json()
    assert as_owner["item"]["canSwap"] is False

    as_other = client.get(f"/api/items/{item.id}", headers=auth_header(bob)).json()
    assert as_other["item"]["canSwap"] is True


def test_item_detail_missing_or_unavailable(client, alice, make_item):
    gone = make_item(alice, is_available=False)
    assert client.get(f"/api/items/{gone.id}").status_code == 404
    assert client.get("/api/items/9999").json()["detail"] == "Item not found"


def test_create_item_starts_unapproved(client, session, alice, auth_header):
    resp = client.post(
        "/api/items",
        data={
            "title": "Striped tee",
            "category": "Tops",
            "type": "T-shirt",
            "condition": "like_new",
            "tags": "cotton, summer ,, blue",
            "pointsValue": "25",
        },
        files=[("images", ("front.jpg", b"\xff\xd8fake", "image/jpeg"))],
        headers=auth_header(alice),
    )
    assert resp.status_code == 201
    item = resp.json()["item"]
    assert item["is_approved"] is False
    assert item["is_available"] is True
    assert item["tags"] == ["cotton", "summer", "blue"]
    assert item["points_value"] == 25
    assert len(item["images"]) == 1
    assert "front.jpg" in item["images"][0]

    assert client.get("/api/items").json()["items"] == []


def test_create_item_defaults_points(client, alice, auth_header):
    resp = client.post(
        "/api/items",
        data={"title": "Scarf", "category": "Accessories", "type": "Scarf", "condition": "good"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 201
    assert resp.json()["item"]["points_value"] == 50
    assert resp.json()["item"]["ai_tags"] == []
    assert resp.json()["item"]["ai_category"] is None


def test_create_item_requires_auth_and_fields(client, alice, auth_header):
    unauthenticated = client.post("/api/items", data={"title": "Scarf"})
    assert unauthenticated.status_code == 401

    resp = client.post(
        "/api/items",
        data={"title": "Scarf", "category": "Accessories", "type": "Scarf", "condition": "mint"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 400
    assert any(error["field"] == "condition" for error in resp.json()["errors"])


def test_create_item_rejects_non_images(client, alice, auth_header):
    resp = client.post(
        "/api/items",
        data={"title": "Scarf", "category": "Accessories", "type": "Scarf", "condition": "good"},
        files=[("images", ("notes.txt", b"hello", "text/plain"))],
        headers=auth_header(alice),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Only image files are allowed"


def test_create_item_moderation_blocks_listing(client, session, alice, auth_header, fake_llm, monkeypatch):
    monkeypatch.setattr("config.AI_ASSIST_ON_CREATE", True)
    monkeypatch.setattr("config.OPENAI_API_KEY", "test-key")
    fake_llm.reply('{"isAppropriate": false, "reason": "Offensive wording", "suggestedChanges": "Reword the title"}')

    resp = client.post(
        "/api/items",
        data={"title": "Bad words", "category": "Tops", "type": "Tee", "condition": "good", "pointsValue": "20"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "Offensive wording"
    assert session.exec(select(Item)).all() == []


def test_create_item_uses_suggested_points(client, alice, auth_header, fake_llm, monkeypatch):
    monkeypatch.setattr("config.AI_ASSIST_ON_CREATE", True)
    monkeypatch.setattr("config.OPENAI_API_KEY", "test-key")
    fake_llm.reply('{"isAppropriate": true}')
    fake_llm.reply("75")
    fake_llm.reply('["silk", "office"]')

    resp = client.post(
        "/api/items",
        data={"title": "Silk blouse", "category": "Tops", "type": "Blouse", "condition": "new"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 201
    assert resp.json()["item"]["points_value"] == 75
    assert resp.json()["item"]["ai_tags"] == ["silk", "office"]
    assert "Silk blouse" in fake_llm.requests[-1]["messages"][-1]["content"]


def test_update_item_owner_only(client, alice, bob, make_item, auth_header):
    item = make_item(alice)

    resp = client.put(
        f"/api/items/{item.id}",
        json={"title": "Faded denim jacket", "pointsValue": 35, "tags": "denim, faded"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 200
    updated = resp.json()["item"]
    assert updated["title"] == "Faded denim jacket"
    assert updated["points_value"] == 35
    assert updated["tags"] == ["denim", "faded"]

    denied = client.put(f"/api/items/{item.id}", json={"title": "Mine now"}, headers=auth_header(bob))
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Not authorized to update this item"


def test_delete_item(client, session, alice, bob, make_item, auth_header):
    item = make_item(alice)

    assert client.delete(f"/api/items/{item.id}", headers=auth_header(bob)).status_code == 403
    assert client.delete(f"/api/items/{item.id}", headers=auth_header(alice)).status_code == 200
    assert session.get(Item, item.id) is None
    assert client.delete(f"/api/items/{item.id}", headers=auth_header(alice)).status_code == 404


def test_my_items_include_unapproved(client, alice, bob, make_item, auth_header):
    make_item(alice, title="Approved")
    make_item(alice, title="Waiting", approved=False, condition=ItemCondition.FAIR)
    make_item(bob, title="Not mine")

    items = client.get("/api/items/user/me", headers=auth_header(alice)).json()["items"]
    assert sorted(item["title"] for item in items) == ["Approved", "Waiting"]
