# piggies/main.py
# Главная точка входа FastAPI для Piggies.
#  • Роутеры: /api/auth, /api/users, /api/messages, /api/albums, /api/referrals,
#    /api/moderation, /api/venues, /api/push, /api/admin, /api/upload/*,
#    /api/admirers, /api/looking-now
#  • Ошибки бизнес-слоя (services/errors.py) -> JSON {"detail": {"code", "message"}}
#  • Статикой по /media/photos/... отдаются только фото анкет; альбомы, медиа
#    чатов и снапы - через авторизованные маршруты /api/albums и /api/messages
#  • Ежедневная доводка рефералов, приостановок и постов "ищу сейчас"
#    (ENV: REFERRAL_SWEEP_ENABLED=1)

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from dotenv import load_dotenv
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from piggies.db import engine  # noqa: E402,F401  инициализация БД/пула соединений
from piggies.services.errors import ServiceError  # noqa: E402
from piggies.utils.media import MEDIA_ROOT, PUBLIC_KINDS, ensure_dir  # noqa: E402

from piggies.routers.auth import router as auth_router  # noqa: E402
from piggies.routers.users import router as users_router  # noqa: E402
from piggies.routers.messages import router as messages_router  # noqa: E402
from piggies.routers.albums import router as albums_router  # noqa: E402
from piggies.routers.referrals import router as referrals_router  # noqa: E402
from piggies.routers.moderation import router as moderation_router  # noqa: E402
from piggies.routers.venues import router as venues_router  # noqa: E402
from piggies.routers.push import router as push_router  # noqa: E402
from piggies.routers.admin import router as admin_router  # noqa: E402
from piggies.routers.admin_venues import router as admin_venues_router  # noqa: E402
from piggies.routers.upload import router as upload_router  # noqa: E402
from piggies.routers.admirers import router as admirers_router  # noqa: E402
from piggies.routers.looking_now import router as looking_now_router  # noqa: E402

from piggies.jobs.referral_sweep import start_referral_sweep_loop  # noqa: E402

log = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

app = FastAPI(
    title="Piggies Backend",
    description="Backend для Piggies: люди рядом, сообщения, приватные альбомы, рефералы, модерация и каталог мест.",
)

# --- CORS: список доменов через запятую в CORS_ORIGINS ---
_cors_env = os.getenv("CORS_ORIGINS")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_env.split(",") if o.strip()] if _cors_env else DEFAULT_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        log.error("service error on %s %s: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


# --- Медиа: публично только фото анкет ---
for _kind in PUBLIC_KINDS:
    app.mount(f"/media/{_kind}", StaticFiles(directory=str(ensure_dir(MEDIA_ROOT / _kind))), name=f"media-{_kind}")

# --- Подключение роутеров ---
app.include_router(auth_router,          prefix="/api/auth",         tags=["Авторизация"])
app.include_router(users_router,         prefix="/api/users",        tags=["Пользователи"])
app.include_router(messages_router,      prefix="/api/messages",     tags=["Сообщения"])
app.include_router(albums_router,        prefix="/api/albums",       tags=["Приватные альбомы"])
app.include_router(referrals_router,     prefix="/api/referrals",    tags=["Рефералы"])
app.include_router(moderation_router,    prefix="/api/moderation",   tags=["Модерация"])
app.include_router(venues_router,        prefix="/api/venues",       tags=["Места"])
app.include_router(admirers_router,      prefix="/api/admirers",     tags=["Поклонники"])
app.include_router(looking_now_router,   prefix="/api/looking-now",  tags=["Ищу сейчас"])
app.include_router(push_router,          prefix="/api/push",         tags=["Push"])
app.include_router(admin_router,         prefix="/api/admin",        tags=["Админка"])
app.include_router(admin_venues_router,  prefix="/api/admin/venues", tags=["Админка: места"])
# роутер загрузки сам задаёт /upload/... → общий "/api" даст /api/upload/...
app.include_router(upload_router,        prefix="/api",              tags=["Загрузка медиа"])


@app.get("/")
def root():
    """Простой healthcheck."""
    return {"message": "Piggies backend работает!", "docs": "/docs"}


@app.on_event("startup")
def _startup_jobs():
    if os.getenv("REFERRAL_SWEEP_ENABLED") == "1":
        start_referral_sweep_loop()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("piggies.main:app", host="0.0.0.0", port=8000, reload=False)
