import pytest

from conftest import auth_header

from piggies.models.user import User
from piggies.utils.media import MEDIA_ROOT

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def open_session(client, sub, name, **body):
    resp = client.post("/api/auth/session", headers=auth_header(sub, name=name), json=body or None)
    assert resp.status_code == 200, resp.text
    return resp.json()


def promote(db, sub):
    user = db.query(User).filter(User.external_id == sub).one()
    user.is_admin = True
    db.commit()
    return user


def test_healthcheck(client):
    assert client.get("/").status_code == 200


def test_session_creates_then_updates_user(client):
    first = open_session(client, "alice", "Alice")
    assert first["created"] is True
    assert first["is_ultra"] is False
    assert len(first["user"]["referral_code"]) == 8

    again = open_session(client, "alice", "Alice B")
    assert again["created"] is False
    assert again["user"]["id"] == first["user"]["id"]
    assert again["user"]["name"] == "Alice B"


def test_session_applies_referral_code_once(client):
    referrer = open_session(client, "ref", "Referrer")
    code = referrer["user"]["referral_code"]
    invited = open_session(client, "new", "Newbie", referral_code=code)
    assert invited["referral_result"] == "applied"

    stats = client.get("/api/referrals/stats", headers=auth_header("ref")).json()
    assert stats["pending_referrals"] == 1
    assert client.get("/api/referrals/referrer", headers=auth_header("new")).json()["id"] == referrer["user"]["id"]


def test_auth_errors(client):
    resp = client.get("/api/users/me")
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "token_required"

    resp = client.get("/api/users/me", headers=auth_header("ghost"))
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "not_registered"

    resp = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.json()["detail"]["code"] == "invalid_token"


def test_service_errors_render_code_and_message(client):
    open_session(client, "alice", "Alice")
    resp = client.patch("/api/users/me/profile", headers=auth_header("alice"), json={"age": 16})
    assert resp.status_code == 422
    assert resp.json() == {
        "detail": {"code": "invalid_age", "message": "age must be between 18 and 120"},
    }


def test_profile_update_and_standing(client):
    open_session(client, "alice", "Alice")
    h = auth_header("alice")
    resp = client.patch("/api/users/me/profile", headers=h,
                        json={"display_name": "Al", "bio": "hi", "age": 30, "interests": ["art", "art", "music"]})
    assert resp.status_code == 200
    assert resp.json()["interests"] == ["art", "music"]

    standing = client.get("/api/users/me/standing", headers=h).json()
    assert standing["status"] == "active"
    assert standing["warning_count"] == 0


def test_message_delivery_queues_push(client, push_sender):
    open_session(client, "alice", "Alice")
    bob = open_session(client, "bob", "Bob")["user"]
    sub = client.post("/api/push/subscribe", headers=auth_header("bob"),
                      json={"endpoint": "https://push.example/bob", "keys": {"p256dh": "k", "auth": "a"}})
    assert sub.status_code == 200

    resp = client.post("/api/messages/send", headers=auth_header("alice"),
                       json={"receiver_id": bob["id"], "content": "hey bob"})
    assert resp.status_code == 200, resp.text
    msg = resp.json()
    assert msg["format"] == "text"

    assert [uid for uid, _ in push_sender.sent] == [bob["id"]]
    assert push_sender.sent[0][1]["body"] == "hey bob"

    convs = client.get("/api/messages/conversations", headers=auth_header("bob")).json()
    assert convs[0]["has_unread"] is True
    assert client.get("/api/messages/unread-count", headers=auth_header("bob")).json() == {"count": 1}

    read = client.post(f"/api/messages/conversations/{msg['conversation_id']}/read", headers=auth_header("bob"))
    assert read.json() == {"updated": 1}
    assert client.get("/api/messages/unread-count", headers=auth_header("bob")).json() == {"count": 0}


def test_push_skipped_when_disabled(client, push_sender):
    open_session(client, "alice", "Alice")
    bob = open_session(client, "bob", "Bob")["user"]
    client.post("/api/push/subscribe", headers=auth_header("bob"),
                json={"endpoint": "https://push.example/bob", "keys": {"p256dh": "k", "auth": "a"}})
    client.patch("/api/users/me/preferences", headers=auth_header("bob"), json={"push_notifications_enabled": False})

    client.post("/api/messages/send", headers=auth_header("alice"), json={"receiver_id": bob["id"], "content": "yo"})
    assert push_sender.sent == []


def test_admin_ban_blocks_actions_and_appeal_lifts_it(client, db):
    open_session(client, "root", "Root")
    promote(db, "root")
    alice = open_session(client, "alice", "Alice")["user"]
    bob = open_session(client, "bob", "Bob")["user"]

    resp = client.post(f"/api/admin/users/{alice['id']}/ban", headers=auth_header("root"), json={"reason": "spam"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "banned"

    blocked = client.post("/api/messages/send", headers=auth_header("alice"),
                          json={"receiver_id": bob["id"], "content": "hi"})
    assert blocked.status_code == 403
    assert blocked.json()["detail"]["code"] == "account_banned"

    notes = client.get("/api/moderation/notifications", headers=auth_header("alice")).json()
    assert notes[0]["type"] == "ban"

    appeal = client.post("/api/moderation/appeals", headers=auth_header("alice"),
                         json={"appeal_type": "ban", "reason": "I was hacked"}).json()
    assert appeal["status"] == "pending"
    can = client.get("/api/moderation/appeals/can-submit", headers=auth_header("alice")).json()
    assert can["can_submit"] is False

    decided = client.patch(f"/api/admin/appeals/{appeal['id']}", headers=auth_header("root"),
                           json={"status": "accepted", "admin_response": "Restored"})
    assert decided.json()["status"] == "accepted"
    assert client.get("/api/users/me/standing", headers=auth_header("alice")).json()["status"] == "active"


def test_admin_routes_require_admin(client):
    open_session(client, "alice", "Alice")
    resp = client.get("/api/admin/stats", headers=auth_header("alice"))
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "admin_required"


def test_admin_stats_and_user_list(client, db):
    open_session(client, "root", "Root")
    promote(db, "root")
    open_session(client, "alice", "Alice")
    stats = client.get("/api/admin/stats", headers=auth_header("root")).json()
    assert stats["total_users"] == 2
    page = client.get("/api/admin/users", headers=auth_header("root"), params={"search": "ali"}).json()
    assert [u["name"] for u in page["users"]] == ["Alice"]


@pytest.mark.parametrize("path,kind", [
    ("/api/upload/photo", "photos"),
    ("/api/upload/album-photo", "albums"),
    ("/api/upload/snap", "snaps"),
])
def test_upload_sniffs_images(client, path, kind):
    open_session(client, "alice", "Alice")
    resp = client.post(path, headers=auth_header("alice"), files={"file": ("photo.txt", PNG, "text/plain")})
    assert resp.status_code == 200, resp.text
    key = resp.json()["storage_key"]
    assert key.startswith(f"{kind}/") and key.endswith(".png")
    assert (MEDIA_ROOT / key).read_bytes() == PNG
    url = resp.json()["url"]
    if kind == "photos":
        assert url.endswith(f"/media/{key}")
    else:
        assert url is None


def test_upload_rejects_non_media(client):
    open_session(client, "alice", "Alice")
    h = auth_header("alice")
    resp = client.post("/api/upload/photo", headers=h, files={"file": ("x.jpg", b"hello world, not an image", "image/jpeg")})
    assert resp.status_code == 415
    assert resp.json()["detail"]["code"] == "unsupported_media"

    empty = client.post("/api/upload/photo", headers=h, files={"file": ("x.jpg", b"", "image/jpeg")})
    assert empty.status_code == 400

    mp4 = b"\x00\x00\x00\x18ftypisom" + b"\x00" * 64
    assert client.post("/api/upload/photo", headers=h, files={"file": ("v.mp4", mp4, "video/mp4")}).status_code == 415
    assert client.post("/api/upload/message-media", headers=h,
                       files={"file": ("v.mp4", mp4, "video/mp4")}).json()["storage_key"].endswith(".mp4")


def upload(client, sub, path="/api/upload/album-photo"):
    resp = client.post(path, headers=auth_header(sub), files={"file": ("a.png", PNG, "image/png")})
    assert resp.status_code == 200, resp.text
    return resp.json()["storage_key"]


def start_share(client, owner_sub="owner", viewer_sub="viewer"):
    owner = open_session(client, owner_sub, "Owner")["user"]
    viewer = open_session(client, viewer_sub, "Viewer")["user"]
    conv = client.post("/api/messages/conversations", headers=auth_header(owner_sub),
                       json={"user_id": viewer["id"]}).json()
    photo = client.post("/api/albums/photos", headers=auth_header(owner_sub),
                        json={"storage_key": upload(client, owner_sub)})
    assert photo.status_code == 200, photo.text
    return owner, viewer, conv["conversation_id"], photo.json()


def test_album_share_flow(client):
    owner, viewer, conv_id, photo = start_share(client)
    assert photo["url"].endswith(f"/api/albums/photos/{photo['id']}/file")

    albums = client.get("/api/albums/", headers=auth_header("owner")).json()
    album_id = albums[0]["id"]
    assert client.get(f"/api/albums/{album_id}", headers=auth_header("viewer")).status_code == 403
    assert client.get(f"/api/albums/photos/{photo['id']}/file", headers=auth_header("viewer")).status_code == 403

    grant = client.post("/api/albums/share", headers=auth_header("owner"),
                        json={"grantee_id": viewer["id"], "conversation_id": conv_id})
    assert grant.status_code == 200, grant.text
    view = client.get(f"/api/albums/{album_id}", headers=auth_header("viewer")).json()
    assert len(view["photos"]) == 1

    msgs = client.get(f"/api/messages/conversations/{conv_id}/messages",
                      headers=auth_header("viewer")).json()
    assert msgs[-1]["format"] == "album_share"
    assert msgs[-1]["sender_id"] == owner["id"]


def test_venue_submit_and_admin_approve(client, db):
    open_session(client, "root", "Root")
    promote(db, "root")
    open_session(client, "alice", "Alice")
    body = {"name": "Pig Pen", "category": "bars_nightlife", "address": "400 Castro St",
            "city": "San Francisco", "country": "USA"}
    venue = client.post("/api/venues/", headers=auth_header("alice"), json=body)
    assert venue.status_code == 200, venue.text
    venue_id = venue.json()["id"]
    assert venue.json()["status"] == "pending"
    assert client.get("/api/venues/can-submit", headers=auth_header("alice")).json()["can_submit"] is False

    approved = client.post(f"/api/admin/venues/{venue_id}/approve", headers=auth_header("root"))
    assert approved.json()["status"] == "approved"

    nearby = client.get("/api/venues/", headers=auth_header("alice"),
                        params={"latitude": 37.76, "longitude": -122.43}).json()
    assert [v["venue"]["id"] for v in nearby] == [venue_id]


# ===== Доступ к приватным файлам ===============================================

def test_album_file_denied_after_revoke_and_not_served_statically(client):
    _, viewer, conv_id, photo = start_share(client)
    client.post("/api/albums/share", headers=auth_header("owner"),
                json={"grantee_id": viewer["id"], "conversation_id": conv_id})
    file_url = f"/api/albums/photos/{photo['id']}/file"

    resp = client.get(file_url, headers=auth_header("viewer"))
    assert resp.status_code == 200
    assert resp.content == PNG
    assert resp.headers["cache-control"] == "private, no-store"
    assert client.get(file_url).status_code == 401

    revoked = client.post("/api/albums/revoke", headers=auth_header("owner"), json={"grantee_id": viewer["id"]})
    assert revoked.json()["revoked"] == 1
    denied = client.get(file_url, headers=auth_header("viewer"))
    assert denied.status_code == 403
    assert denied.json()["detail"]["code"] == "no_album_access"
    assert client.get(file_url, headers=auth_header("owner")).status_code == 200

    albums = client.get("/api/albums/", headers=auth_header("owner")).json()
    owner_url = client.get(f"/api/albums/{albums[0]['id']}", headers=auth_header("owner")).json()["photos"][0]["url"]
    assert "/media/" not in owner_url


def test_static_mount_serves_profile_photos_only(client):
    open_session(client, "alice", "Alice")
    photo_key = upload(client, "alice", "/api/upload/photo")
    album_key = upload(client, "alice")
    snap_key = upload(client, "alice", "/api/upload/snap")

    assert client.get(f"/media/{photo_key}").status_code == 200
    assert client.get(f"/media/{album_key}").status_code == 404
    assert client.get(f"/media/{snap_key}").status_code == 404
    assert (MEDIA_ROOT / album_key).is_file()


def test_share_survives_announce_failure(client, monkeypatch):
    def broken_announce(*args, **kwargs):
        raise RuntimeError("conversation write failed")

    monkeypatch.setattr("piggies.services.albums.announce_album_share", broken_announce)
    _, viewer, conv_id, photo = start_share(client)
    grant = client.post("/api/albums/share", headers=auth_header("owner"),
                        json={"grantee_id": viewer["id"], "conversation_id": conv_id})
    assert grant.status_code == 200, grant.text
    assert grant.json()["is_revoked"] is False

    shared = client.get("/api/albums/shared-with-me", headers=auth_header("viewer")).json()
    assert len(shared) == 1
    assert client.get(f"/api/albums/photos/{photo['id']}/file", headers=auth_header("viewer")).status_code == 200
    msgs = client.get(f"/api/messages/conversations/{conv_id}/messages", headers=auth_header("viewer")).json()
    assert [m["format"] for m in msgs] == []


def test_cannot_attach_another_users_upload(client):
    open_session(client, "victim", "Victim")
    open_session(client, "thief", "Thief")
    key = upload(client, "victim")

    stolen = client.post("/api/albums/photos", headers=auth_header("thief"), json={"storage_key": key})
    assert stolen.status_code == 403
    assert stolen.json()["detail"]["code"] == "not_your_upload"
    assert client.post("/api/users/me/photos", headers=auth_header("thief"),
                       json={"storage_key": upload(client, "victim", "/api/upload/photo")}).status_code == 403

    photo = client.post("/api/albums/photos", headers=auth_header("victim"), json={"storage_key": key}).json()
    assert (MEDIA_ROOT / key).is_file()
    assert client.delete(f"/api/albums/photos/{photo['id']}", headers=auth_header("victim")).status_code == 200
    assert not (MEDIA_ROOT / key).exists()


def test_snap_media_url_only_in_view_response(client):
    open_session(client, "alice", "Alice")
    bob = open_session(client, "bob", "Bob")["user"]
    key = upload(client, "alice", "/api/upload/snap")
    sent = client.post("/api/messages/send", headers=auth_header("alice"),
                       json={"receiver_id": bob["id"], "format": "snap", "storage_key": key,
                             "snap_view_mode": "view_once"})
    assert sent.status_code == 200, sent.text
    snap = sent.json()
    assert snap["media_url"] is None

    listed = client.get(f"/api/messages/conversations/{snap['conversation_id']}/messages",
                        headers=auth_header("bob")).json()
    assert listed[-1]["media_url"] is None
    media = f"/api/messages/{snap['id']}/media"
    closed = client.get(media, headers=auth_header("bob"))
    assert closed.status_code == 403
    assert closed.json()["detail"]["code"] == "snap_not_open"

    opened = client.post(f"/api/messages/{snap['id']}/snap/view", headers=auth_header("bob")).json()
    assert opened["message"]["media_url"].endswith(media)
    assert client.get(media, headers=auth_header("bob")).content == PNG
    assert client.get(media, headers=auth_header("alice")).status_code == 403

    listed = client.get(f"/api/messages/conversations/{snap['conversation_id']}/messages",
                        headers=auth_header("bob")).json()
    assert listed[-1]["media_url"] is None


def test_image_message_media_goes_through_api(client):
    open_session(client, "alice", "Alice")
    bob = open_session(client, "bob", "Bob")["user"]
    open_session(client, "eve", "Eve")
    key = upload(client, "alice", "/api/upload/message-media")
    msg = client.post("/api/messages/send", headers=auth_header("alice"),
                      json={"receiver_id": bob["id"], "format": "image", "storage_key": key}).json()
    assert msg["media_url"].endswith(f"/api/messages/{msg['id']}/media")
    assert client.get(f"/api/messages/{msg['id']}/media", headers=auth_header("bob")).content == PNG
    assert client.get(f"/api/messages/{msg['id']}/media", headers=auth_header("eve")).status_code == 403
    assert client.get(f"/media/{key}").status_code == 404


# ===== Поклонники, избранное, "ищу сейчас" =====================================

def test_waves_and_profile_viewers(client):
    alice = open_session(client, "alice", "Alice")["user"]
    bob = open_session(client, "bob", "Bob")["user"]

    first = client.post(f"/api/admirers/waves/{alice['id']}", headers=auth_header("bob")).json()
    assert first == {"success": True, "already_waved": False}
    again = client.post(f"/api/admirers/waves/{alice['id']}", headers=auth_header("bob")).json()
    assert again["already_waved"] is True
    assert client.post(f"/api/admirers/waves/{bob['id']}", headers=auth_header("bob")).status_code == 422
    assert client.get(f"/api/admirers/waves/{alice['id']}/status", headers=auth_header("bob")).json()["has_waved"]

    assert client.get(f"/api/users/{alice['id']}/profile", headers=auth_header("bob")).status_code == 200
    limits = client.get("/api/users/me/daily-limits", headers=auth_header("bob")).json()
    assert limits["profile_views"] == {"used": 1, "limit": 5, "remaining": 4}

    waves = client.get("/api/admirers/waves", headers=auth_header("alice")).json()
    assert [w["user"]["id"] for w in waves["items"]] == [bob["id"]]
    viewers = client.get("/api/admirers/viewers", headers=auth_header("alice")).json()
    assert [v["user"]["id"] for v in viewers["items"]] == [bob["id"]]
    stats = client.get("/api/admirers/stats", headers=auth_header("alice")).json()
    assert stats["total_waves"] == 1 and stats["total_viewers"] == 1
    assert stats["waves_limit"] == 3


def test_favorite_users_endpoints(client):
    open_session(client, "alice", "Alice")
    bob = open_session(client, "bob", "Bob")["user"]
    h = auth_header("alice")

    assert client.get(f"/api/users/{bob['id']}/favorite", headers=h).json() == {"is_favorite": False}
    assert client.post(f"/api/users/{bob['id']}/favorite", headers=h).json() == {"is_favorite": True}
    favs = client.get("/api/users/me/favorites", headers=h).json()
    assert [f["user"]["id"] for f in favs] == [bob["id"]]
    assert client.delete(f"/api/users/{bob['id']}/favorite", headers=h).json() == {"is_favorite": False}
    assert client.get("/api/users/me/favorites", headers=h).json() == []


def test_looking_now_post_lifecycle(client):
    open_session(client, "alice", "Alice")
    open_session(client, "bob", "Bob")

    status = client.get("/api/looking-now/status", headers=auth_header("alice")).json()
    assert status["can_post"] is True and status["post_duration_hours"] == 1

    post = client.post("/api/looking-now/", headers=auth_header("alice"),
                       json={"message": "Coffee in the Castro?", "latitude": 37.76, "longitude": -122.43})
    assert post.status_code == 200, post.text
    post_id = post.json()["id"]

    feed = client.get("/api/looking-now/", headers=auth_header("bob")).json()
    assert [p["id"] for p in feed] == [post_id]
    assert "latitude" not in feed[0]
    assert feed[0]["is_own"] is False

    second = client.post("/api/looking-now/", headers=auth_header("alice"), json={"message": "again"})
    assert second.status_code == 403
    assert second.json()["detail"]["code"] == "daily_post_limit"

    assert client.patch(f"/api/looking-now/{post_id}", headers=auth_header("bob"),
                        json={"can_host": True}).status_code == 403
    updated = client.patch(f"/api/looking-now/{post_id}", headers=auth_header("alice"), json={"can_host": True})
    assert updated.json()["can_host"] is True

    assert client.delete(f"/api/looking-now/{post_id}", headers=auth_header("alice")).json() == {"success": True}
    assert client.get("/api/looking-now/mine", headers=auth_header("alice")).json() is None
    assert client.get("/api/looking-now/", headers=auth_header("bob")).json() == []
