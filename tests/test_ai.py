def test_ai_routes_require_login(client):
    assert client.post("/api/ai/suggest-points", json={}).status_code == 401


def test_generate_description(client, alice, auth_header, fake_llm):
    fake_llm.reply("A crisp linen shirt, perfect for summer.")
    resp = client.post(
        "/api/ai/generate-description",
        json={"category": "Tops", "type": "Shirt", "colors": ["white"]},
        headers=auth_header(alice),
    )
    assert resp.status_code == 200
    assert resp.json()["description"] == "A crisp linen shirt, perfect for summer."


def test_generate_description_failure_is_500(client, alice, auth_header, fake_llm):
    fake_llm.reply("rate limited", status_code=429)
    resp = client.post(
        "/api/ai/generate-description", json={"category": "Tops"}, headers=auth_header(alice)
    )
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to generate description"


def test_suggest_points_never_fails(client, alice, auth_header):
    resp = client.post("/api/ai/suggest-points", json={"category": "Tops"}, headers=auth_header(alice))
    assert resp.status_code == 200
    assert resp.json()["points"] == 50


def test_extract_tags(client, alice, auth_header, fake_llm):
    missing = client.post("/api/ai/extract-tags", json={}, headers=auth_header(alice))
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Text is required"

    fake_llm.reply('```json\n["wool", "winter"]\n```')
    resp = client.post(
        "/api/ai/extract-tags", json={"text": "warm wool sweater"}, headers=auth_header(alice)
    )
    assert resp.json()["tags"] == ["wool", "winter"]


def test_analyze_image(client, alice, auth_header, fake_llm):
    missing = client.post("/api/ai/analyze-image", json={}, headers=auth_header(alice))
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Image URL is required"

    fake_llm.reply('{"category": "outerwear", "type": "jacket", "colors": ["black"]}')
    resp = client.post(
        "/api/ai/analyze-image",
        json={"imageUrl": "https://img.example.com/jacket.jpg"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 200
    assert resp.json()["analysis"]["type"] == "jacket"


def test_moderate(client, alice, auth_header, fake_llm):
    missing = client.post("/api/ai/moderate", json={}, headers=auth_header(alice))
    assert missing.status_code == 400

    fake_llm.reply('{"isAppropriate": false, "reason": "Spam", "suggestedChanges": "Remove links"}')
    resp = client.post(
        "/api/ai/moderate",
        json={"title": "Buy now", "description": "visit my shop"},
        headers=auth_header(alice),
    )
    assert resp.status_code == 200
    assert resp.json()["moderation"] == {
        "isAppropriate": False,
        "reason": "Spam",
        "suggestedChanges": "Remove links",
    }


def test_recommendations_send_listing_history(client, alice, make_item, auth_header, fake_llm):
    make_item(alice, category="Tops", type="Shirt", tags=["linen"])
    fake_llm.reply('[{"category": "Bottoms", "type": "Shorts"}]')

    resp = client.get("/api/ai/recommendations", headers=auth_header(alice))
    assert resp.status_code == 200
    assert resp.json()["recommendations"] == [{"category": "Bottoms", "type": "Shorts"}]

    prompt = fake_llm.requests[-1]["messages"][-1]["content"]
    assert '"category": "Tops"' in prompt
    assert '"linen"' in prompt
