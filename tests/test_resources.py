RESOURCE = {
    "title": "Polity short notes",
    "description": "Laxmikanth chapters 1-10 condensed.",
    "category": "Notes",
    "exam_type": "UPSC CSE",
}


def upload(client, user, **changes):
    r = client.post("/api/resources", json={**RESOURCE, **changes}, headers=user["headers"])
    assert r.status_code == 201, r.text
    return r.json()


def test_upload_by_achiever_and_admin(client, mentor, admin):
    data = upload(client, mentor)
    assert data["uploader_name"] == "Ravi Kumar"
    assert data["file_url"] == "#"
    assert upload(client, admin)["uploaded_by"] == admin["user"]["id"]


def test_aspirant_cannot_upload(client, aspirant):
    r = client.post("/api/resources", json=RESOURCE, headers=aspirant["headers"])
    assert r.status_code == 403


def test_bad_category(client, mentor):
    r = client.post("/api/resources", json={**RESOURCE, "category": "Videos"}, headers=mentor["headers"])
    assert r.status_code == 422


def test_filters(client, mentor):
    notes = upload(client, mentor)
    tips = upload(client, mentor, title="Interview tips", description="Answering the personality test.",
                  category="Tips", exam_type="SSC CGL")

    assert [r["id"] for r in client.get("/api/resources").json()] == [tips["id"], notes["id"]]
    assert [r["id"] for r in client.get("/api/resources", params={"category": "Tips"}).json()] == [tips["id"]]
    assert len(client.get("/api/resources", params={"category": "All"}).json()) == 2
    assert [r["id"] for r in client.get("/api/resources", params={"exam_type": "UPSC CSE"}).json()] == [notes["id"]]
    assert [r["id"] for r in client.get("/api/resources", params={"search": "laxmikanth"}).json()] == [notes["id"]]


def test_like_and_download(client, mentor, aspirant):
    data = upload(client, mentor)
    r = client.post(f"/api/resources/{data['id']}/like", headers=aspirant["headers"])
    assert r.json() == {"likes": 1, "is_liked": True}
    assert client.get(f"/api/resources/{data['id']}").json()["liked_by_ids"] == [aspirant["user"]["id"]]

    client.post(f"/api/resources/{data['id']}/download", headers=aspirant["headers"])
    r = client.post(f"/api/resources/{data['id']}/download", headers=aspirant["headers"])
    assert r.json() == {"downloads": 2}


def test_delete_resource(client, mentor, aspirant, admin):
    data = upload(client, mentor)
    assert client.delete(f"/api/resources/{data['id']}", headers=aspirant["headers"]).status_code == 403
    assert client.delete(f"/api/resources/{data['id']}", headers=admin["headers"]).status_code == 204
    assert client.get(f"/api/resources/{data['id']}").status_code == 404
