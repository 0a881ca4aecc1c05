from bson import ObjectId


def test_like_then_unlike_restores_count(client, create_content):
    item = create_content()
    url = f"/api/content/{item['id']}/toggle-like"

    assert client.post(url, json={"action": "like"}).json() == {"success": True, "data": {"likes": 1}}
    assert client.post(url, json={"action": "like"}).json()["data"]["likes"] == 2
    assert client.post(url, json={"action": "unlike"}).json()["data"]["likes"] == 1
    assert client.post(url, json={"action": "unlike"}).json()["data"]["likes"] == 0


def test_unlike_does_not_go_below_zero(client, db, create_content):
    item = create_content()
    res = client.post(f"/api/content/{item['id']}/toggle-like", json={"action": "unlike"})
    assert res.status_code == 200
    assert res.json()["data"]["likes"] == 0
    assert db["content"].find_one({"_id": ObjectId(item["id"])})["likes"] == 0


def test_bookmark_and_unbookmark(client, create_content):
    item = create_content()
    url = f"/api/content/{item['id']}/toggle-bookmark"

    assert client.post(url, json={"action": "bookmark"}).json()["data"] == {"bookmarks": 1}
    assert client.post(url, json={"action": "unbookmark"}).json()["data"] == {"bookmarks": 0}
    assert client.post(url, json={"action": "unbookmark"}).json()["data"] == {"bookmarks": 0}


def test_invalid_action_is_rejected(client, create_content):
    item = create_content()
    res = client.post(f"/api/content/{item['id']}/toggle-like", json={"action": "bookmark"})
    assert res.status_code == 400
    assert res.json()["success"] is False

    res = client.post(f"/api/content/{item['id']}/toggle-bookmark", json={})
    assert res.status_code == 400


def test_counter_on_missing_content(client):
    res = client.post(f"/api/content/{ObjectId()}/toggle-like", json={"action": "like"})
    assert res.status_code == 404
    res = client.post(f"/api/content/{ObjectId()}/toggle-bookmark", json={"action": "unbookmark"})
    assert res.status_code == 404


def test_counters_only_accept_post(client, create_content):
    item = create_content()
    res = client.get(f"/api/content/{item['id']}/toggle-like")
    assert res.status_code == 405
    assert res.json()["success"] is False
