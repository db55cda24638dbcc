# piggies/routers/looking_now.py
# -----------------------------------------------------------------------------
# "Ищу сейчас": лента, свой пост, лимиты публикации.
# Статические пути объявлены раньше /{post_id}.
# -----------------------------------------------------------------------------

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from piggies.db import get_db
from piggies.models.user import User
from piggies.schemas.looking_now import FeedPostOut, PostCreate, PostOut, PostUpdate, PostingStatusOut
from piggies.services import looking_now, moderation
from piggies.services.users import profiles_by_user_id, user_card
from piggies.utils.auth_dep import get_current_user
from piggies.utils.dates import utc_now
from piggies.utils.media import public_base_url

router = APIRouter()


@router.get("/", response_model=List[FeedPostOut])
def feed(
    request: Request,
    limit: int = Query(looking_now.FEED_LIMIT, ge=1, le=looking_now.FEED_LIMIT),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = looking_now.list_active_posts(db, current_user, utc_now(), limit)
    profiles = profiles_by_user_id(db, [r["user"].id for r in rows])
    base = public_base_url(request)
    return [
        {
            "id": r["post"].id,
            "message": r["post"].message,
            "location_name": r["post"].location_name,
            "can_host": r["post"].can_host,
            "created_at": r["post"].created_at,
            "expires_at": r["post"].expires_at,
            "user": user_card(r["user"], profiles.get(r["user"].id), base),
            "is_own": r["is_own"],
        }
        for r in rows
    ]


@router.post("/", response_model=PostOut)
def create_post(
    payload: PostCreate,
    background: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    warnings_before = current_user.warning_count or 0
    post = looking_now.create_post(db, current_user, utc_now(), **payload.model_dump())
    db.commit()
    db.refresh(post)
    moderation.push_if_auto_warned(background, db, current_user, warnings_before)
    return post


@router.get("/mine", response_model=Optional[PostOut])
def my_post(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return looking_now.my_active_post(db, current_user, utc_now())


@router.get("/status", response_model=PostingStatusOut)
def posting_status(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return looking_now.posting_status(db, current_user, utc_now())


@router.patch("/{post_id}", response_model=PostOut)
def update_post(
    post_id: int,
    payload: PostUpdate,
    background: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    warnings_before = current_user.warning_count or 0
    post = looking_now.update_post(db, current_user, post_id, payload.model_dump(exclude_unset=True), utc_now())
    db.commit()
    db.refresh(post)
    moderation.push_if_auto_warned(background, db, current_user, warnings_before)
    return post


@router.delete("/{post_id}")
def delete_post(post_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    looking_now.delete_post(db, current_user, post_id)
    db.commit()
    return {"success": True}
