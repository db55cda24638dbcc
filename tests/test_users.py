from datetime import timedelta

import pytest

from piggies.models.media_upload import MediaUpload
from piggies.services import blocks, uploads, users
from piggies.services.errors import NotFound, PermissionDenied, ValidationFailed

from conftest import user_profile


def test_profile_photo_must_be_own_photo_upload(db, now, make_user, uploaded):
    me, other = make_user(), make_user()
    theirs = uploaded(other, "photos/2026/10/theirs.jpg")
    album_key = uploaded(me, "albums/2026/10/private.jpg")

    with pytest.raises(PermissionDenied):
        users.add_profile_photo(db, me, theirs)
    with pytest.raises(ValidationFailed):
        users.add_profile_photo(db, me, album_key)

    mine = uploaded(me, "photos/2026/10/mine.jpg")
    assert users.add_profile_photo(db, me, mine).photo_keys == [mine]
    assert user_profile(db, other).photo_keys == []


def test_removed_profile_photo_releases_upload(db, now, make_user, uploaded):
    me = make_user()
    key = uploaded(me, "photos/2026/10/face.jpg")
    users.add_profile_photo(db, me, key)
    assert uploads.release_upload(db, key) is False

    assert users.remove_profile_photo(db, me, key) is True
    assert uploads.release_upload(db, key) is True
    assert db.query(MediaUpload).count() == 0


def test_favorites_are_idempotent_and_newest_first(db, now, make_user):
    me, first, second = make_user("Me"), make_user("First"), make_user("Second")
    users.add_favorite_user(db, me, first.id, now)
    users.add_favorite_user(db, me, second.id, now + timedelta(minutes=1))
    again = users.add_favorite_user(db, me, first.id, now + timedelta(hours=1))
    assert again.favorited_at == now

    assert [u.id for _, u, _ in users.list_favorite_users(db, me)] == [second.id, first.id]
    assert users.is_favorite_user(db, me.id, first.id)
    assert not users.is_favorite_user(db, first.id, me.id)

    assert users.remove_favorite_user(db, me, first.id) is True
    assert users.remove_favorite_user(db, me, first.id) is False


def test_favorites_respect_blocks(db, now, make_user):
    me, crush, blocker = make_user(), make_user(), make_user()
    with pytest.raises(ValidationFailed):
        users.add_favorite_user(db, me, me.id, now)
    with pytest.raises(NotFound):
        users.add_favorite_user(db, me, 9999, now)

    blocks.block_user(db, blocker, me.id, now)
    with pytest.raises(NotFound):
        users.add_favorite_user(db, me, blocker.id, now)

    users.add_favorite_user(db, me, crush.id, now)
    blocks.block_user(db, crush, me.id, now)
    assert users.list_favorite_users(db, me) == []


def test_user_card_hides_online_status_when_asked(db, now, make_user):
    shy = make_user("Shy", is_online=True, show_online_status=False,
                    profile={"age": 31, "photo_keys": ["photos/2026/10/s.jpg"]})
    card = users.user_card(shy, user_profile(db, shy), "https://api.example")
    assert card["is_online"] is False and card["last_active"] is None
    assert card["photo_url"] == "https://api.example/media/photos/2026/10/s.jpg"
    assert card["age"] == 31
