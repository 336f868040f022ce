def test_follow_and_unfollow(client, aspirant, mentor):
    mentor_id = mentor["user"]["id"]
    aspirant_id = aspirant["user"]["id"]

    r = client.post(f"/api/follow/{mentor_id}", headers=aspirant["headers"])
    assert r.status_code == 200
    # following twice is a no-op
    assert client.post(f"/api/follow/{mentor_id}", headers=aspirant["headers"]).status_code == 200

    followers = client.get(f"/api/follow/{mentor_id}/followers", headers=aspirant["headers"]).json()
    assert [u["id"] for u in followers] == [aspirant_id]
    following = client.get(f"/api/follow/{aspirant_id}/following", headers=aspirant["headers"]).json()
    assert [u["id"] for u in following] == [mentor_id]
    r = client.get(f"/api/follow/{aspirant_id}/status/{mentor_id}", headers=aspirant["headers"])
    assert r.json() == {"is_following": True}

    client.delete(f"/api/follow/{mentor_id}", headers=aspirant["headers"])
    r = client.get(f"/api/follow/{aspirant_id}/status/{mentor_id}", headers=aspirant["headers"])
    assert r.json() == {"is_following": False}


def test_cannot_follow_self_or_missing_user(client, aspirant):
    r = client.post(f"/api/follow/{aspirant['user']['id']}", headers=aspirant["headers"])
    assert r.status_code == 400
    assert client.post("/api/follow/999999", headers=aspirant["headers"]).status_code == 404


def create_post(client, mentor, content="Read the newspaper every morning."):
    r = client.post("/api/mentorposts", json={"content": content}, headers=mentor["headers"])
    assert r.status_code == 201, r.text
    return r.json()


def test_create_post(client, mentor):
    post = create_post(client, mentor)
    assert post["mentor_name"] == "Ravi Kumar"
    assert post["likes"] == 0
    assert post["media_type"] == "none"


def test_only_achievers_post(client, aspirant):
    r = client.post("/api/mentorposts", json={"content": "hello"}, headers=aspirant["headers"])
    assert r.status_code == 403


def test_empty_post_rejected(client, mentor):
    r = client.post("/api/mentorposts", json={"content": "   "}, headers=mentor["headers"])
    assert r.status_code == 422


def test_list_posts(client, mentor):
    first = create_post(client, mentor, "first")
    second = create_post(client, mentor, "second")
    r = client.get("/api/mentorposts")
    assert [p["id"] for p in r.json()] == [second["id"], first["id"]]
    r = client.get("/api/mentorposts", params={"mentor_id": 999})
    assert r.json() == []


def test_like_toggle(client, mentor, aspirant):
    post = create_post(client, mentor)
    r = client.post(f"/api/mentorposts/{post['id']}/like", headers=aspirant["headers"])
    assert r.json() == {"likes": 1, "is_liked": True}
    r = client.post(f"/api/mentorposts/{post['id']}/like", headers=aspirant["headers"])
    assert r.json() == {"likes": 0, "is_liked": False}


def test_comment(client, mentor, aspirant):
    post = create_post(client, mentor)
    r = client.post(f"/api/mentorposts/{post['id']}/comments", json={"comment": "Thanks!"},
                    headers=aspirant["headers"])
    assert r.status_code == 201
    assert r.json()["user_name"] == "Asha Verma"

    posts = client.get("/api/mentorposts").json()
    assert [c["comment"] for c in posts[0]["comments"]] == ["Thanks!"]


def test_delete_post_permissions(client, mentor, aspirant):
    post = create_post(client, mentor)
    assert client.delete(f"/api/mentorposts/{post['id']}", headers=aspirant["headers"]).status_code == 403
    assert client.delete(f"/api/mentorposts/{post['id']}", headers=mentor["headers"]).status_code == 204
    assert client.post(f"/api/mentorposts/{post['id']}/like", headers=aspirant["headers"]).status_code == 404


# ---------- users ----------

def test_browse_approved_mentors(client, mentor, signup):
    signup("pending@example.com", user_type="achiever")
    r = client.get("/api/users", params={"user_type": "achiever", "approved": "true"})
    assert [u["email"] for u in r.json()] == ["ravi@example.com"]


def test_user_by_email(client, aspirant):
    r = client.get("/api/users/email/ASHA@example.com")
    assert r.status_code == 200
    assert r.json()["id"] == aspirant["user"]["id"]
    assert client.get("/api/users/email/nobody@example.com").status_code == 404


def test_update_profile(client, mentor):
    r = client.put("/api/users/profile", json={"bio": "AIR 42", "hourly_rate": 800}, headers=mentor["headers"])
    assert r.status_code == 200
    assert r.json()["bio"] == "AIR 42"
    assert r.json()["hourly_rate"] == 800
    assert r.json()["name"] == "Ravi Kumar"


def test_update_other_user_forbidden(client, aspirant, mentor, admin):
    r = client.put(f"/api/users/{mentor['user']['id']}", json={"bio": "x"}, headers=aspirant["headers"])
    assert r.status_code == 403
    r = client.put(f"/api/users/{mentor['user']['id']}", json={"bio": "Edited"}, headers=admin["headers"])
    assert r.json()["bio"] == "Edited"
    assert client.get("/api/users/999999").status_code == 404
