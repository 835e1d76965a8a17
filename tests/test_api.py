from conftest import PASSWORD, auth_headers, make_image


async def test_register_and_login(client):
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "dana@example.com", "name": "Dana", "password": "longpassword"}
    )
    assert response.status_code == 201, response.text
    assert response.json()["email"] == "dana@example.com"

    duplicate = await client.post(
        "/api/v1/auth/register",
        json={"email": "DANA@example.com", "password": "longpassword"}
    )
    assert duplicate.status_code == 409

    login = await client.post("/api/v1/auth/login", json={"email": "dana@example.com", "password": "longpassword"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["name"] == "Dana"


async def test_login_with_wrong_password(client, alice):
    response = await client.post("/api/v1/auth/login", json={"email": alice.email, "password": "wrong-password"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


async def test_requests_without_token_are_rejected(client):
    response = await client.get("/api/v1/files/contents")
    assert response.status_code == 401
    assert response.json() == {"error": {"code": "UNAUTHORIZED", "message": "Not authenticated"}}

    response = await client.get("/api/v1/files/contents", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


async def test_folder_and_upload_flow(client, alice):
    headers = auth_headers(alice)

    folder = await client.post("/api/v1/folders", json={"name": "Reports"}, headers=headers)
    assert folder.status_code == 201, folder.text
    folder_id = folder.json()["id"]

    duplicate = await client.post("/api/v1/folders", json={"name": "Reports"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "CONFLICT"

    upload = await client.post(
        "/api/v1/files/upload",
        files={"file": ("q1.pdf", b"%PDF-1.4 quarterly", "application/pdf")},
        data={"folder_id": folder_id},
        headers=headers
    )
    assert upload.status_code == 201, upload.text
    file = upload.json()
    assert file["status"] == "ready"
    assert file["kind"] == "file"
    assert file["parent_id"] == folder_id

    contents = await client.get("/api/v1/files/contents", params={"folder_id": folder_id}, headers=headers)
    assert contents.status_code == 200
    assert [f["name"] for f in contents.json()["files"]] == ["q1.pdf"]

    content = await client.get(f"/api/v1/files/{file['id']}/content", headers=headers)
    assert content.status_code == 200
    assert content.content == b"%PDF-1.4 quarterly"
    assert content.headers["content-type"] == "application/pdf"

    # Local storage has no presigned URLs
    url = await client.get(f"/api/v1/files/{file['id']}/download-url", headers=headers)
    assert url.status_code == 500
    assert url.json()["error"]["code"] == "STORAGE_NOT_CONFIGURED"


async def test_image_upload_enqueues_thumbnail(client, job_queue, alice):
    response = await client.post(
        "/api/v1/files/upload",
        files={"file": ("pic.png", make_image(64, 64), "image/png")},
        headers=auth_headers(alice)
    )
    assert response.status_code == 201
    assert job_queue.jobs == [("cloudvault.thumbnails.generate", {"file_id": response.json()["id"]})]


async def test_item_operations(client, alice, bob):
    headers = auth_headers(alice)
    a = (await client.post("/api/v1/folders", json={"name": "A"}, headers=headers)).json()
    b = (await client.post("/api/v1/folders", json={"name": "B", "parent_id": a["id"]}, headers=headers)).json()

    renamed = await client.patch(f"/api/v1/items/folder/{b['id']}/name", json={"name": "B2"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "B2"
    assert renamed.json()["kind"] == "folder"

    cycle = await client.patch(f"/api/v1/items/folder/{a['id']}/parent", json={"parent_id": b["id"]}, headers=headers)
    assert cycle.status_code == 400
    assert cycle.json()["error"]["code"] == "INVALID_MOVE"

    moved = await client.patch(f"/api/v1/items/folder/{b['id']}/parent", json={"parent_id": None}, headers=headers)
    assert moved.status_code == 200
    assert moved.json()["parent_id"] is None

    forbidden = await client.delete(f"/api/v1/items/folder/{a['id']}", headers=auth_headers(bob))
    assert forbidden.status_code == 403

    deleted = await client.delete(f"/api/v1/items/folder/{a['id']}", headers=headers)
    assert deleted.status_code == 204

    gone = await client.get(f"/api/v1/folders/{a['id']}", headers=headers)
    assert gone.status_code == 404


async def test_sharing_and_search(client, alice, bob):
    upload = await client.post(
        "/api/v1/files/upload",
        files={"file": ("budget.xlsx", b"numbers", "application/vnd.ms-excel")},
        headers=auth_headers(alice)
    )
    file_id = upload.json()["id"]

    before = await client.get("/api/v1/search", params={"q": "budget"}, headers=auth_headers(bob))
    assert before.json()["files"] == []

    share = await client.post(
        "/api/v1/shares",
        json={"item_id": file_id, "item_kind": "file", "email": bob.email, "permission": "viewer"},
        headers=auth_headers(alice)
    )
    assert share.status_code == 201, share.text

    after = await client.get("/api/v1/search", params={"q": "BUDGET"}, headers=auth_headers(bob))
    assert [f["name"] for f in after.json()["files"]] == ["budget.xlsx"]

    root = await client.get("/api/v1/files/contents", headers=auth_headers(bob))
    assert [f["id"] for f in root.json()["files"]] == [file_id]

    listed = await client.get(
        "/api/v1/shares",
        params={"item_id": file_id, "item_kind": "file"},
        headers=auth_headers(alice)
    )
    assert len(listed.json()["shares"]) == 1

    self_share = await client.post(
        "/api/v1/shares",
        json={"item_id": file_id, "item_kind": "file", "email": alice.email},
        headers=auth_headers(alice)
    )
    assert self_share.status_code == 400
    assert self_share.json()["error"]["code"] == "INVALID_SHARE"

    revoked = await client.delete(f"/api/v1/shares/{share.json()['id']}", headers=auth_headers(alice))
    assert revoked.status_code == 204

    denied = await client.get(f"/api/v1/files/{file_id}", headers=auth_headers(bob))
    assert denied.status_code == 403


async def test_public_link_flow(client, alice):
    headers = auth_headers(alice)
    upload = await client.post(
        "/api/v1/files/upload",
        files={"file": ("deck.pdf", b"slides", "application/pdf")},
        headers=headers
    )
    file_id = upload.json()["id"]

    link = await client.post(
        "/api/v1/links",
        json={"item_id": file_id, "item_kind": "file", "password": "open sesame", "max_access_count": 1},
        headers=headers
    )
    assert link.status_code == 201, link.text
    body = link.json()
    assert body["has_password"] is True
    assert "password_hash" not in body
    token = body["token"]

    # Resolving needs no bearer token
    missing = await client.post(f"/api/v1/links/{token}/resolve")
    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "PASSWORD_REQUIRED"

    wrong = await client.post(f"/api/v1/links/{token}/resolve", json={"password": "nope"})
    assert wrong.json()["error"]["code"] == "INVALID_PASSWORD"

    ok = await client.post(f"/api/v1/links/{token}/resolve", json={"password": "open sesame"})
    assert ok.status_code == 200, ok.text
    assert ok.json()["item"]["name"] == "deck.pdf"
    assert ok.json()["access_count"] == 1

    exhausted = await client.post(f"/api/v1/links/{token}/resolve", json={"password": "open sesame"})
    assert exhausted.status_code == 410
    assert exhausted.json()["error"]["code"] == "LINK_LIMIT_REACHED"

    revoked = await client.delete(f"/api/v1/links/{body['id']}", headers=headers)
    assert revoked.status_code == 204

    unknown = await client.post(f"/api/v1/links/{token}/resolve", json={"password": "open sesame"})
    assert unknown.status_code == 404
    assert unknown.json()["error"]["code"] == "LINK_NOT_FOUND"


async def test_multipart_upload_endpoints(client, alice):
    # The default test storage is local, which cannot presign
    response = await client.post(
        "/api/v1/files/uploads",
        json={"name": "big.bin", "size": 10, "part_count": 1},
        headers=auth_headers(alice)
    )
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "STORAGE_NOT_CONFIGURED"

    invalid = await client.post(
        "/api/v1/files/uploads",
        json={"name": "big.bin", "size": -1},
        headers=auth_headers(alice)
    )
    assert invalid.status_code == 422


async def test_health_and_root(client):
    root = await client.get("/")
    assert root.json()["api"] == "/api/v1"

    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["services"]["redis"] == "unhealthy"


async def test_login_uses_fixture_password(client, alice):
    response = await client.post("/api/v1/auth/login", json={"email": alice.email, "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"


async def test_refresh_token_flow(client, alice):
    login = await client.post("/api/v1/auth/login", json={"email": alice.email, "password": PASSWORD})
    tokens = login.json()
    assert tokens["refresh_token"]

    refreshed = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200, refreshed.text
    access = refreshed.json()["access_token"]

    me = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {access}"})
    assert me.json()["email"] == alice.email

    # Refresh tokens are not bearer credentials, and access tokens do not refresh
    wrong_kind = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert wrong_kind.status_code == 401
    rejected = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert rejected.status_code == 401
    assert rejected.json()["error"]["code"] == "UNAUTHORIZED"


async def test_star_and_recent_endpoints(client, alice, bob):
    headers = auth_headers(alice)
    upload = await client.post(
        "/api/v1/files/upload",
        files={"file": ("todo.txt", b"milk", "text/plain")},
        headers=headers
    )
    file_id = upload.json()["id"]

    starred = await client.post(f"/api/v1/search/star/{file_id}", params={"kind": "file"}, headers=headers)
    assert starred.status_code == 200
    assert starred.json() == {"item_id": file_id, "kind": "file", "starred": True}

    listed = await client.get("/api/v1/search/starred", headers=headers)
    assert [f["id"] for f in listed.json()["files"]] == [file_id]

    forbidden = await client.post(f"/api/v1/search/star/{file_id}", params={"kind": "file"}, headers=auth_headers(bob))
    assert forbidden.status_code == 403

    missing_kind = await client.post(f"/api/v1/search/star/{file_id}", headers=headers)
    assert missing_kind.status_code == 422

    recent = await client.get("/api/v1/search/recent", headers=headers)
    assert recent.status_code == 200
    assert [f["name"] for f in recent.json()["files"]] == ["todo.txt"]
