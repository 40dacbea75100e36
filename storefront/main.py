import logging
import secrets

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from storefront.api.router import router as api_router
from storefront.core.config import settings
from storefront.core.http_hardening import install_http_hardening
from storefront.services.uploads import images_dir

logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "X-Requested-With"],
    expose_headers=["Content-Range"],
)
install_http_hardening(app)

app.include_router(api_router)

# Published product images, served under the same prefix upload responses use.
images_dir().mkdir(parents=True, exist_ok=True)
app.mount(f"/{settings.UPLOAD_SUBDIR}", StaticFiles(directory=str(images_dir())), name="images")


@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/csrf-token")
def csrf_token():
    return {"csrfToken": secrets.token_urlsafe(32)}
