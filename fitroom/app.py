"""
MIT License — Fitroom size & try-on API (FastAPI)
"""

import uuid
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.middleware.cors import CORSMiddleware
from PIL import Image
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

from fitroom.config import Settings
from fitroom.ingest import from_file, from_remote_url
from fitroom.types import SizeResult, TryOnPayload, TryOnResult
from fitroom.providers.gemini import estimate_size, try_on, TryOnError

settings = Settings()

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)

# ---------------- App & Middleware ----------------

app = FastAPI(title="Fitroom Size & Try-On (FastAPI)")

origins = settings.origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=["*"])
if settings.FORCE_HTTPS:
    app.add_middleware(HTTPSRedirectMiddleware)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# ---------------- Utilities ----------------

async def _read_person(person: UploadFile) -> str:
    if person.filename is None:
        raise HTTPException(status_code=400, detail="Missing 'person' file")

    max_bytes = settings.MAX_UPLOAD_MB * 1024 * 1024
    if person.size is not None and person.size > max_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    try:
        return await from_file(person)
    except OSError as e:
        logger.error(f"Failed to read upload: {e}")
        raise HTTPException(status_code=400, detail="Could not read uploaded image")


async def _load_image(url: str, label: str) -> str:
    try:
        return await from_remote_url(
            url,
            proxy_base=settings.IMAGE_PROXY_URL,
            timeout_s=settings.PROXY_TIMEOUT_S,
        )
    except httpx.HTTPError as e:
        logger.error(f"Failed to load {label} image: {e}")
        raise HTTPException(status_code=400, detail=f"Could not load {label} image")
    except (OSError, Image.DecompressionBombError) as e:
        logger.error(f"Failed to decode {label} image: {e}")
        raise HTTPException(status_code=400, detail=f"Unsupported {label} image type")


async def _run_tryon(person_image: str, product_image: str, product_name: str) -> TryOnResult:
    request_id = uuid.uuid4().hex
    try:
        image = await try_on(person_image, product_image, product_name, settings=settings)
    except TryOnError as e:
        logger.error(f"[{request_id}] Try-on provider error: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    logger.info(f"[{request_id}] Try-on completed for {product_name!r}")
    return TryOnResult(image=image, productName=product_name, requestId=request_id)


@app.on_event("startup")
async def _startup():
    logger.info(f"GEMINI_API_KEY configured: {bool(settings.GEMINI_API_KEY)}")
    logger.info(f"Allowed origins: {origins}")

# ---------------- Routes ----------------

@app.get("/health")
def health():
    return {
        "ok": True,
        "gemini_configured": bool(settings.GEMINI_API_KEY),
        "allowed_origins": origins,
    }

@app.post("/api/size", response_model=SizeResult)
@limiter.limit(settings.RATE_LIMIT)
async def api_size(
    request: Request,
    person: UploadFile = File(...),
    productName: str = Form(...),
):
    logger.info(f"Size request from {request.client.host if request.client else 'unknown'}")
    photo = await _read_person(person)
    size = await estimate_size(photo, productName, settings=settings)
    return SizeResult(size=size, productName=productName)

@app.post("/api/tryon", response_model=TryOnResult)
@limiter.limit(settings.RATE_LIMIT)
async def api_tryon(
    request: Request,
    person: UploadFile = File(...),
    garmentUrl: str = Form(...),
    productName: Optional[str] = Form(None),
):
    try:
        logger.info(f"Try-on request from {request.client.host if request.client else 'unknown'}")
        person_image = await _read_person(person)
        product_image = await _load_image(garmentUrl, "garment")
        return await _run_tryon(person_image, product_image, productName or "garment")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in try-on endpoint: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@app.post("/api/tryon/json", response_model=TryOnResult)
@limiter.limit(settings.RATE_LIMIT)
async def api_tryon_json(request: Request, payload: TryOnPayload):
    try:
        person_image = await _load_image(payload.personImage, "person")
        product_image = await _load_image(payload.productImage, "product")
        return await _run_tryon(person_image, product_image, payload.productName)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in try-on endpoint: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@app.get("/")
def root():
    return HTMLResponse("<h1>Fitroom Size &amp; Try-On (FastAPI)</h1><p>See <code>/api/size</code> and <code>/api/tryon</code>.</p>")
