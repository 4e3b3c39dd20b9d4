"""
MIT License — Size and try-on provider (Gemini)
Uses the google-genai SDK for both the size estimate and the try-on render.
"""

from __future__ import annotations
import base64
import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from fitroom.config import Settings
from fitroom.dataurl import mime_type, strip_encoding, to_data_url
from fitroom.types import DEFAULT_SIZE, SIZE_CODES, SizeCode

logger = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/png"

CREDENTIALS_MESSAGE = (
    "The Gemini API key was not accepted. Check that GEMINI_API_KEY is set "
    "to a valid key for the Generative Language API and restart the service."
)
REGION_MESSAGE = (
    "Access to the image model is restricted for this account. The API is "
    "not available in your region or billing is not enabled for the project."
)
REGION_STATUSES = ("FAILED_PRECONDITION", "PERMISSION_DENIED")


class TryOnError(Exception):
    pass


class CredentialsError(TryOnError):
    pass


class RegionRestrictedError(TryOnError):
    pass


class TryOnFailed(TryOnError):
    pass


def _image_part(data_url: str) -> types.Part:
    return types.Part.from_bytes(
        data=base64.b64decode(strip_encoding(data_url)),
        mime_type=mime_type(data_url),
    )


def build_size_prompt(product_name: str) -> str:
    sizes = ", ".join(SIZE_CODES)
    return (
        "Analyze the person's body shape in the image.\n"
        f'Recommend the best fit size for this product: "{product_name}".\n'
        f"Available sizes: [{sizes}].\n\n"
        "IMPORTANT: Be realistic. If the person has a curvy or strong build, "
        "choose L, XL, or XXL. Avoid choosing 'M' by default.\n\n"
        'Response format: Only return the size code (e.g., "XL"). No extra text.'
    )


def build_tryon_prompt(product_name: str) -> str:
    return (
        "VIRTUAL TRY-ON TASK - HIGH PRECISION REQUIRED.\n\n"
        "OBJECTIVE:\n"
        "Dress the person in Image 1 with the COMPLETE outfit shown in Image 2.\n"
        f'The product is: "{product_name}".\n\n'
        "STRICT RULES:\n"
        "1. COMPLETE OUTFIT: If Image 2 shows a multi-piece set, apply EVERY piece "
        "(e.g. both the top and the bottom), never just a subset.\n"
        "2. DESIGN INTEGRITY: Keep all seams, textures, colors, prints and cut-outs "
        "exactly as they appear in Image 2. DO NOT add pockets, logos, or change the stitching.\n"
        "3. ZERO HALLUCINATION: Do not invent new clothing parts. Use only what is "
        "visible in the reference image.\n"
        "4. PRESERVE IDENTITY: Keep the person's face, hair, skin tone, hands, and the "
        "original background from Image 1 100% identical.\n"
        "5. PERFECT FIT: Drape the fabric realistically over the person's body shape.\n\n"
        "Return the result as a high-quality synthesized image."
    )


def normalize_size(text: Optional[str]) -> SizeCode:
    size = (text or "").strip().upper()
    return size if size in SIZE_CODES else DEFAULT_SIZE  # type: ignore[return-value]


async def estimate_size(
    photo: str,
    product_name: str,
    *,
    settings: Optional[Settings] = None,
) -> SizeCode:
    """Ask the model for a size code. Never raises; every failure yields ``M``."""
    try:
        settings = settings or Settings()
        if not settings.GEMINI_API_KEY:
            raise CredentialsError("GEMINI_API_KEY not configured")

        client = genai.Client(api_key=settings.GEMINI_API_KEY)
        response = await client.aio.models.generate_content(
            model=settings.SIZE_MODEL,
            contents=[_image_part(photo), build_size_prompt(product_name)],
        )
        size = normalize_size(response.text)
        logger.info(f"Size estimate for {product_name!r}: {size}")
        return size
    except Exception:
        logger.exception("Size estimation failed, falling back to default size")
        return DEFAULT_SIZE


def classify_error(exc: BaseException) -> TryOnError:
    """Map an SDK or transport error onto the try-on error family."""
    if isinstance(exc, TryOnError):
        return exc

    message = str(exc)
    code = getattr(exc, "code", None)
    status = getattr(exc, "status", None)
    lowered = message.lower()

    # region first: Gemini reports unsupported locations as 400 FAILED_PRECONDITION
    if code == 403 or status in REGION_STATUSES or "403" in message or "location" in lowered:
        return RegionRestrictedError(REGION_MESSAGE)
    if code in (400, 401) or "api key" in lowered or "400" in message:
        return CredentialsError(CREDENTIALS_MESSAGE)
    return TryOnFailed(f"Technical error during try-on: {message or 'unknown error'}")


def extract_image(response: Any) -> str:
    """Return the first inline image of the first candidate as a PNG data URL.

    Only the first image-bearing part is used; any further images in the
    response are discarded.
    """
    candidates = getattr(response, "candidates", None) or []
    content = getattr(candidates[0], "content", None) if candidates else None
    parts = getattr(content, "parts", None) or []
    if not parts:
        raise TryOnFailed("No image was generated: the model returned no content.")

    for part in parts:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline else None
        if data:
            if isinstance(data, bytes):
                data = base64.b64encode(data).decode("ascii")
            return to_data_url(OUTPUT_MIME_TYPE, data)

    raise TryOnFailed("No image was generated: the response contained no image data.")


async def try_on(
    user_photo: str,
    product_photo: str,
    product_name: str,
    *,
    settings: Optional[Settings] = None,
) -> str:
    """Render ``product_photo`` onto the person in ``user_photo``.

    Returns a ``data:image/png;base64,...`` URL. Every failure is raised as a
    ``TryOnError`` subclass; no fallback image is ever produced.
    """
    try:
        settings = settings or Settings()
        if not settings.GEMINI_API_KEY:
            raise CredentialsError(CREDENTIALS_MESSAGE)

        client = genai.Client(api_key=settings.GEMINI_API_KEY)
        logger.info(f"Requesting try-on for {product_name!r} from {settings.TRYON_MODEL}")
        response = await client.aio.models.generate_content(
            model=settings.TRYON_MODEL,
            contents=[
                _image_part(user_photo),
                _image_part(product_photo),
                build_tryon_prompt(product_name),
            ],
            config=types.GenerateContentConfig(
                image_config=types.ImageConfig(aspect_ratio=settings.TRYON_ASPECT_RATIO),
            ),
        )
        return extract_image(response)
    except TryOnError as e:
        logger.error(f"Try-on error: {e}")
        raise
    except Exception as e:
        logger.error(f"Try-on error: {e}")
        raise classify_error(e) from e
