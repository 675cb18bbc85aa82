def test_submit_review_returns_201(client):
    resp = client.post("/submit-review", json={"rating": 5, "text": "Great", "category": "scifi"})
    assert resp.status_code == 201
    assert resp.json()["acknowledged"] is True


def test_get_reviews_by_category(client):
    client.post("/submit-review", json={"text": "a", "category": "scifi"})
    client.post("/submit-review", json={"text": "b", "category": "classic"})
    client.post("/submit-review", json={"text": "c"})

    assert len(client.get("/getReviews").json()) == 3
    scifi = client.get("/getReviews", params={"category": "scifi"}).json()
    assert [r["text"] for r in scifi] == ["a"]
    assert client.get("/getReviews", params={"category": "poetry"}).json() == []
