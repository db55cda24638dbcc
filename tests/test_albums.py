from datetime import datetime, timedelta

import pytest

from piggies.models.album import AlbumAccessGrant
from piggies.models.media_upload import MediaUpload
from piggies.models.message import Message
from piggies.services import albums, messaging, uploads
from piggies.services.errors import InvalidState, PermissionDenied, ValidationFailed


@pytest.fixture
def setup(db, now, make_user, uploaded):
    owner = make_user("Owner")
    viewer = make_user("Viewer")
    conv = messaging.get_or_create_conversation(db, owner.id, viewer.id, now)
    albums.add_photo(db, owner, uploaded(owner, "albums/2026/10/a.jpg"), now, caption="first")
    return owner, viewer, conv


def test_default_album_is_created_once(db, now, make_user):
    owner = make_user()
    a1 = albums.get_or_create_default_album(db, owner, now)
    a2 = albums.get_or_create_default_album(db, owner, now)
    assert a1.id == a2.id
    assert a1.is_default is True
    assert len(albums.list_my_albums(db, owner, now)) == 1


def test_free_tier_album_and_photo_limits(db, now, make_user, uploaded):
    owner = make_user()
    with pytest.raises(PermissionDenied) as exc:
        albums.create_album(db, owner, "Second", now)
    assert exc.value.code == "album_limit_reached"

    for i in range(10):
        albums.add_photo(db, owner, uploaded(owner, f"albums/2026/10/{i}.jpg"), now)
    with pytest.raises(PermissionDenied) as exc:
        albums.add_photo(db, owner, uploaded(owner, "albums/2026/10/11.jpg"), now)
    assert exc.value.code == "photo_limit_reached"


def test_ultra_gets_more_albums(db, now, make_user):
    owner = make_user(subscription_tier="ultra", subscription_status="active")
    album = albums.create_album(db, owner, "  Weekend  ", now, description="trip")
    assert album.name == "Weekend"
    assert len(albums.list_my_albums(db, owner, now)) == 2


def test_share_grants_access_and_revoke_removes_it(db, now, setup):
    owner, viewer, conv = setup
    album = albums.get_or_create_default_album(db, owner, now)
    assert not albums.has_album_access(db, album, viewer.id, now)

    grant = albums.share_album(db, owner, viewer.id, conv.id, now)
    assert grant.expires_at is None
    view = albums.view_album(db, viewer, album.id, now, base_url="https://cdn.example")
    photo_id = view["photos"][0]["id"]
    assert view["photos"][0]["url"] == f"https://cdn.example/api/albums/photos/{photo_id}/file"
    assert albums.photo_for_viewer(db, viewer, photo_id, now).storage_key == "albums/2026/10/a.jpg"

    assert albums.revoke_album_access(db, owner, viewer.id) == 1
    assert albums.revoke_album_access(db, owner, viewer.id) == 0
    with pytest.raises(PermissionDenied):
        albums.view_album(db, viewer, album.id, now)
    with pytest.raises(PermissionDenied):
        albums.photo_for_viewer(db, viewer, photo_id, now)


def test_time_limited_share_is_ultra_only_and_expires(db, now, setup):
    owner, viewer, conv = setup
    with pytest.raises(PermissionDenied) as exc:
        albums.share_album(db, owner, viewer.id, conv.id, now, expires_in="24h")
    assert exc.value.code == "ultra_required"

    owner.referral_ultra_expires_at = now + timedelta(days=30)
    grant = albums.share_album(db, owner, viewer.id, conv.id, now, expires_in="24h")
    assert grant.expires_at == now + timedelta(hours=24)

    album = albums.get_album(db, grant.album_id)
    assert albums.has_album_access(db, album, viewer.id, now + timedelta(hours=23))
    assert not albums.has_album_access(db, album, viewer.id, now + timedelta(hours=24))


def test_reshare_reuses_grant_and_clears_revocation(db, now, setup):
    owner, viewer, conv = setup
    albums.share_album(db, owner, viewer.id, conv.id, now)
    albums.revoke_album_access(db, owner, viewer.id)
    grant = albums.share_album(db, owner, viewer.id, conv.id, now + timedelta(hours=1))
    db.flush()

    assert grant.is_revoked is False
    assert grant.granted_at == now + timedelta(hours=1)
    assert db.query(AlbumAccessGrant).count() == 1


def test_share_outside_own_conversation_is_rejected(db, now, setup, make_user):
    owner, viewer, conv = setup
    stranger = make_user()
    with pytest.raises(PermissionDenied):
        albums.share_album(db, owner, stranger.id, conv.id, now)
    with pytest.raises(ValidationFailed):
        albums.share_album(db, owner, owner.id, conv.id, now)
    with pytest.raises(ValidationFailed):
        albums.share_album(db, owner, viewer.id, conv.id, now, expires_in="1y")


def test_announce_share_posts_album_message(db, now, setup):
    owner, viewer, conv = setup
    grant = albums.share_album(db, owner, viewer.id, conv.id, now)
    msg = albums.announce_album_share(db, owner, grant, now)
    assert msg.format == "album_share"
    assert "Private Album" in msg.content
    assert db.query(Message).filter(Message.conversation_id == conv.id).count() == 1


def test_sharing_status_both_directions(db, now, setup):
    owner, viewer, conv = setup
    albums.share_album(db, owner, viewer.id, conv.id, now)
    status = albums.album_sharing_status(db, viewer, conv.id, now)
    assert status["they_shared"] is True
    assert status["i_shared"] is False
    assert status["their_share_expires_at"] is None
    assert len(status["their_album_ids"]) == 1

    shared = albums.list_shared_with_me(db, viewer, now, base_url="")
    assert shared[0]["photo_count"] == 1
    assert shared[0]["user"]["name"] == "Owner"


def test_photo_edit_reorder_and_delete(db, now, make_user, uploaded):
    owner = make_user(subscription_tier="ultra", subscription_status="active")
    album = albums.create_album(db, owner, "Extra", now)
    p1 = albums.add_photo(db, owner, uploaded(owner, "albums/2026/10/1.jpg"), now, album_id=album.id)
    p2 = albums.add_photo(db, owner, uploaded(owner, "albums/2026/10/2.jpg"), now, album_id=album.id)
    assert (p1.order, p2.order) == (1, 2)

    albums.reorder_photos(db, owner, album.id, [p2.id, p1.id], now)
    assert (p1.order, p2.order) == (2, 1)
    with pytest.raises(ValidationFailed):
        albums.reorder_photos(db, owner, album.id, [p1.id], now)

    albums.update_album(db, owner, album.id, now, cover_photo_id=p2.id)
    assert albums.remove_photo(db, owner, p2.id) == "albums/2026/10/2.jpg"
    assert album.cover_photo_id is None

    keys = albums.delete_album(db, owner, album.id, now)
    assert keys == ["albums/2026/10/1.jpg"]
    default = albums.get_or_create_default_album(db, owner, now)
    with pytest.raises(InvalidState):
        albums.delete_album(db, owner, default.id, now)


T0 = datetime(2026, 10, 19, 12, 0, 0)


@pytest.mark.parametrize("expires_at, is_revoked, expected", [
    (None, False, True),
    (None, True, False),
    (T0 + timedelta(seconds=1), False, True),
    (T0 + timedelta(days=7), True, False),
    (T0, False, False),
    (T0 - timedelta(seconds=1), False, False),
    (T0 - timedelta(days=1), True, False),
])
def test_grant_effective_only_while_unrevoked_and_unexpired(expires_at, is_revoked, expected):
    grant = AlbumAccessGrant(expires_at=expires_at, is_revoked=is_revoked)
    assert albums.is_grant_effective(grant, T0) is expected


def test_missing_grant_is_never_effective():
    assert albums.is_grant_effective(None, T0) is False


def test_add_photo_accepts_only_own_album_uploads(db, now, make_user, uploaded):
    owner = make_user()
    other = make_user()
    theirs = uploaded(other, "albums/2026/10/theirs.jpg")

    with pytest.raises(PermissionDenied) as exc:
        albums.add_photo(db, owner, theirs, now)
    assert exc.value.code == "not_your_upload"
    with pytest.raises(PermissionDenied):
        albums.add_photo(db, owner, "albums/2026/10/never-uploaded.jpg", now)
    with pytest.raises(ValidationFailed) as exc:
        albums.add_photo(db, owner, uploaded(owner, "photos/2026/10/face.jpg"), now)
    assert exc.value.code == "invalid_storage_key"


def test_release_keeps_upload_while_another_photo_uses_it(db, now, make_user, uploaded):
    owner = make_user(subscription_tier="ultra", subscription_status="active")
    extra = albums.create_album(db, owner, "Extra", now)
    key = uploaded(owner, "albums/2026/10/twice.jpg")
    p1 = albums.add_photo(db, owner, key, now)
    p2 = albums.add_photo(db, owner, key, now, album_id=extra.id)

    albums.remove_photo(db, owner, p1.id)
    assert uploads.release_upload(db, key) is False
    albums.remove_photo(db, owner, p2.id)
    assert uploads.release_upload(db, key) is True
    assert db.query(MediaUpload).count() == 0
    assert uploads.release_upload(db, "albums/2026/10/unknown.jpg") is False
