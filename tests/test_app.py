from __future__ import annotations

import io
import os
from unittest.mock import AsyncMock, patch

import httpx
from fastapi.testclient import TestClient
from PIL import Image

from fitroom.app import app
from fitroom.providers.gemini import CredentialsError, RegionRestrictedError


client = TestClient(app)

GENERATED = "data:image/png;base64,abc123"
GARMENT = "data:image/png;base64,Z2FybWVudA=="


def make_image(width: int = 64, height: int = 96, color=(128, 128, 128)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def person_files():
    return {"person": ("me.png", make_image(), "image/png")}


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_size_endpoint():
    with patch("fitroom.app.estimate_size", new=AsyncMock(return_value="XL")) as mock_size:
        response = client.post("/api/size", files=person_files(), data={"productName": "Running Shorts"})
    assert response.status_code == 200
    assert response.json() == {"size": "XL", "productName": "Running Shorts"}
    photo, name = mock_size.call_args.args
    assert photo.startswith("data:image/png;base64,")
    assert name == "Running Shorts"


def test_tryon_with_data_url_garment():
    with patch("fitroom.app.try_on", new=AsyncMock(return_value=GENERATED)) as mock_tryon:
        response = client.post(
            "/api/tryon",
            files=person_files(),
            data={"garmentUrl": GARMENT, "productName": "Yoga Set"},
        )
    assert response.status_code == 200
    body = response.json()
    assert body["image"] == GENERATED
    assert body["productName"] == "Yoga Set"
    assert body["requestId"]
    person, garment, name = mock_tryon.call_args.args
    assert person.startswith("data:image/png;base64,")
    assert garment == GARMENT
    assert name == "Yoga Set"


def test_tryon_provider_error_maps_to_502():
    error = CredentialsError("The Gemini API key was not accepted.")
    with patch("fitroom.app.try_on", new=AsyncMock(side_effect=error)):
        response = client.post("/api/tryon", files=person_files(), data={"garmentUrl": GARMENT})
    assert response.status_code == 502
    assert "API key" in response.json()["detail"]


def test_tryon_garment_load_failure_is_400():
    request = httpx.Request("GET", "https://images.weserv.nl/")
    failure = httpx.ConnectError("unreachable", request=request)
    with patch("fitroom.app.from_remote_url", new=AsyncMock(side_effect=failure)):
        response = client.post(
            "/api/tryon",
            files=person_files(),
            data={"garmentUrl": "https://shop.example.com/set.jpg"},
        )
    assert response.status_code == 400
    assert "garment" in response.json()["detail"]


def test_tryon_json_endpoint():
    payload = {"personImage": "data:image/jpeg;base64,cGVyc29u", "productImage": GARMENT, "productName": "Yoga Set"}
    with patch("fitroom.app.try_on", new=AsyncMock(return_value=GENERATED)) as mock_tryon:
        response = client.post("/api/tryon/json", json=payload)
    assert response.status_code == 200
    assert response.json()["image"] == GENERATED
    assert mock_tryon.call_args.args[:2] == ("data:image/jpeg;base64,cGVyc29u", GARMENT)


def test_tryon_json_region_error():
    payload = {"personImage": GARMENT, "productImage": GARMENT, "productName": "Yoga Set"}
    error = RegionRestrictedError("not available in your region")
    with patch("fitroom.app.try_on", new=AsyncMock(side_effect=error)):
        response = client.post("/api/tryon/json", json=payload)
    assert response.status_code == 502
    assert "region" in response.json()["detail"]


def make_truncated_png() -> bytes:
    buffer = io.BytesIO()
    Image.frombytes("RGB", (200, 200), os.urandom(200 * 200 * 3)).save(buffer, format="PNG")
    return buffer.getvalue()[:2048]


def test_tryon_truncated_garment_is_400():
    with patch("fitroom.ingest._fetch", new=AsyncMock(return_value=make_truncated_png())):
        with patch("fitroom.app.try_on", new=AsyncMock(return_value=GENERATED)) as mock_tryon:
            response = client.post(
                "/api/tryon",
                files=person_files(),
                data={"garmentUrl": "https://shop.example.com/set.png"},
            )
    assert response.status_code == 400
    assert "garment" in response.json()["detail"]
    mock_tryon.assert_not_called()


def test_tryon_decompression_bomb_is_400():
    bomb = Image.DecompressionBombError("Image size exceeds limit")
    with patch("fitroom.app.from_remote_url", new=AsyncMock(side_effect=bomb)):
        response = client.post(
            "/api/tryon",
            files=person_files(),
            data={"garmentUrl": "https://shop.example.com/huge.png"},
        )
    assert response.status_code == 400
