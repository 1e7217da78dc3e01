import uuid


def _pack_body(**overrides) -> dict:
    body = {
        "gig": {"title": "Saturday Wedding", "date": "2026-12-05", "venue_name": "Old Mill"},
        "schedule": [{"time": "15:00", "label": "Ceremony"}],
        "materials": [],
        "packing": [{"label": "Suit"}],
        "setlist": [{"name": "Dinner", "songs": [{"title": "Moon River"}]}],
        "roles": [{"role": "Guitar", "name": "Ann"}],
        "isEditing": False,
    }
    body.update(overrides)
    return body


async def test_save_and_load_pack(api_client):
    response = await api_client.post("/api/gigs/pack", json=_pack_body())

    assert response.status_code == 200
    saved = response.json()
    assert saved["public_slug"].startswith("saturday-wedding-")

    loaded = await api_client.get(f"/api/gigs/{saved['id']}/pack")
    assert loaded.status_code == 200
    pack = loaded.json()
    assert pack["title"] == "Saturday Wedding"
    assert pack["venue_name"] == "Old Mill"
    assert pack["schedule"][0]["label"] == "Ceremony"
    assert pack["setlist_structured"][0]["songs"][0]["title"] == "Moon River"
    assert pack["lineup"][0]["role"] == "Guitar"
    assert pack["lineup"][0]["invitationStatus"] == "pending"
    assert "gigRoleId" in pack["lineup"][0]


async def test_duplicate_ids_are_rejected(api_client):
    item_id = str(uuid.uuid4())
    body = _pack_body(
        schedule=[
            {"id": item_id, "time": "15:00", "label": "Ceremony"},
            {"id": item_id, "time": "16:00", "label": "Drinks"},
        ]
    )

    response = await api_client.post("/api/gigs/pack", json=body)

    assert response.status_code == 422
    assert "duplicate" in response.text


async def test_create_requires_title(api_client):
    response = await api_client.post("/api/gigs/pack", json=_pack_body(gig={"date": "2026-12-05"}))

    assert response.status_code == 422


async def test_blank_role_is_rejected(api_client):
    response = await api_client.post("/api/gigs/pack", json=_pack_body(roles=[{"role": "  "}]))

    assert response.status_code == 422


async def test_editing_someone_elses_gig_is_not_found(api_client, caller):
    created = (await api_client.post("/api/gigs/pack", json=_pack_body())).json()

    caller.user_id = uuid.uuid4()
    response = await api_client.post(
        "/api/gigs/pack",
        json=_pack_body(gig={"title": "Mine now"}, isEditing=True, gigId=created["id"]),
    )

    assert response.status_code == 404
    assert response.json()["detail"].startswith("Gig save failed (header):")
    assert (await api_client.get(f"/api/gigs/{created['id']}/pack")).status_code == 404


async def test_dangling_contact_is_bad_request(api_client):
    body = _pack_body(roles=[{"role": "Bass", "contactId": str(uuid.uuid4())}])

    response = await api_client.post("/api/gigs/pack", json=body)

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Gig save failed (roles):")


async def test_share_token_conflict(api_client, caller):
    await api_client.post("/api/gigs/pack", json=_pack_body(shareToken="wedding"))

    caller.user_id = uuid.uuid4()
    response = await api_client.post(
        "/api/gigs/pack", json=_pack_body(gig={"title": "Other"}, shareToken="wedding")
    )

    assert response.status_code == 409


async def test_public_pack_by_slug(api_client):
    await api_client.post(
        "/api/gigs/pack",
        json=_pack_body(
            gig={"title": "Saturday Wedding", "internal_notes": "Fee 400"}, shareToken="mill"
        ),
    )

    response = await api_client.get("/api/gigpack/mill")
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Saturday Wedding"
    assert "internal_notes" not in body
    assert "gigRoleId" not in body["lineup"][0]

    missing = await api_client.get("/api/gigpack/nope")
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Not found"}


async def test_delete_gig(api_client):
    created = (await api_client.post("/api/gigs/pack", json=_pack_body())).json()

    response = await api_client.delete(f"/api/gigs/{created['id']}")
    assert response.status_code == 204

    assert (await api_client.get(f"/api/gigs/{created['id']}/pack")).status_code == 404
    assert (await api_client.delete(f"/api/gigs/{created['id']}")).status_code == 404


async def test_malformed_gig_id(api_client):
    response = await api_client.get("/api/gigs/not-a-uuid/pack")

    assert response.status_code == 400


async def test_invitation_flow(api_client, caller, owner_id, musician_id):
    body = _pack_body(roles=[{"role": "Violin", "name": "Vi", "userId": str(musician_id)}])
    created = (await api_client.post("/api/gigs/pack", json=body)).json()
    pack = (await api_client.get(f"/api/gigs/{created['id']}/pack")).json()
    gig_role_id = pack["lineup"][0]["gigRoleId"]

    caller.user_id = musician_id
    inbox = (await api_client.get("/api/notifications", params={"unreadOnly": "true"})).json()
    assert len(inbox) == 1
    assert inbox[0]["gig_id"] == created["id"]

    read = await api_client.post(f"/api/notifications/{inbox[0]['id']}/read")
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert (await api_client.get("/api/notifications", params={"unreadOnly": "true"})).json() == []

    answer = await api_client.post(
        f"/api/gig-roles/{gig_role_id}/respond", json={"status": "declined"}
    )
    assert answer.status_code == 200
    assert answer.json()["invitationStatus"] == "declined"

    bad = await api_client.post(f"/api/gig-roles/{gig_role_id}/respond", json={"status": "maybe"})
    assert bad.status_code == 422

    caller.user_id = owner_id
    forbidden = await api_client.post(
        f"/api/gig-roles/{gig_role_id}/respond", json={"status": "accepted"}
    )
    assert forbidden.status_code == 404


async def test_notification_bulk_endpoints(api_client, caller, owner_id, musician_id):
    for title in ("First", "Second"):
        body = _pack_body(
            gig={"title": title},
            roles=[{"role": "Cello", "name": "Cy", "userId": str(musician_id)}],
        )
        assert (await api_client.post("/api/gigs/pack", json=body)).status_code == 200

    caller.user_id = musician_id
    assert (await api_client.get("/api/notifications/unread-count")).json() == {"count": 2}

    marked = await api_client.post("/api/notifications/read-all")
    assert marked.json() == {"count": 2}
    assert (await api_client.get("/api/notifications/unread-count")).json() == {"count": 0}

    inbox = (await api_client.get("/api/notifications")).json()
    caller.user_id = owner_id
    assert (await api_client.delete(f"/api/notifications/{inbox[0]['id']}")).status_code == 404

    caller.user_id = musician_id
    assert (await api_client.delete(f"/api/notifications/{inbox[0]['id']}")).status_code == 204
    assert (await api_client.delete("/api/notifications/not-a-uuid")).status_code == 400
    assert (await api_client.delete("/api/notifications")).status_code == 204
    assert (await api_client.get("/api/notifications")).json() == []
