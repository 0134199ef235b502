"""
Tests for main FastAPI application endpoints
"""
import json

from fastapi.testclient import TestClient

from stubs import error_reply, image_reply, text_reply


def _stub_gemini(monkeypatch, reply_for):
    from swapnet import gemini

    calls = []

    async def fake_post(_client, *, url, headers, payload):
        calls.append(payload)
        return reply_for(payload)

    monkeypatch.setattr(gemini, "_gemini_post_json", fake_post)
    return calls


def test_root_endpoint(client: TestClient):
    """Test the root endpoint returns a valid response"""
    response = client.get("/")
    assert response.status_code == 200
    assert "SwapNet Studio API" in response.json()["message"]


def test_credential_override_lifecycle(client: TestClient, monkeypatch):
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"):
        monkeypatch.delenv(name, raising=False)

    assert client.get("/api/credential").json() == {"configured": False, "override": False}

    response = client.put("/api/credential", data={"api_key": "manual-key"})
    assert response.status_code == 200
    assert client.get("/api/credential").json() == {"configured": True, "override": True}

    response = client.delete("/api/credential")
    assert response.json() == {"configured": False, "override": False}


def test_blank_credential_is_rejected(client: TestClient):
    response = client.put("/api/credential", data={"api_key": "   "})
    assert response.status_code == 401
    assert response.json()["detail"]["kind"] == "InvalidCredential"


def test_try_on_without_credential_is_401(client: TestClient, monkeypatch, sample_image_bytes):
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"):
        monkeypatch.delenv(name, raising=False)
    calls = _stub_gemini(monkeypatch, lambda _payload: image_reply())

    files = {
        "subject_image": ("me.png", sample_image_bytes, "image/png"),
        "garment_image": ("shirt.png", sample_image_bytes, "image/png"),
    }
    response = client.post("/api/try-on", files=files)

    assert response.status_code == 401
    assert response.json()["detail"]["kind"] == "MissingCredential"
    assert calls == []


def test_try_on_missing_subject(client: TestClient, sample_image_bytes):
    files = {"garment_image": ("shirt.png", sample_image_bytes, "image/png")}
    response = client.post("/api/try-on", files=files)
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "MissingSubject"


def test_try_on_missing_garment(client: TestClient, sample_image_bytes):
    files = {"subject_image": ("me.png", sample_image_bytes, "image/png")}
    response = client.post("/api/try-on", files=files)
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "MissingGarment"


def test_try_on_rejects_invalid_file_type(client: TestClient):
    files = {
        "subject_image": ("notes.txt", b"hello", "text/plain"),
        "garment_image": ("shirt.txt", b"hello", "text/plain"),
    }
    response = client.post("/api/try-on", files=files)
    assert response.status_code == 400
    assert "invalid file type" in response.json()["detail"]


def test_try_on_rejects_out_of_range_count(client: TestClient, sample_image_bytes):
    files = {"subject_image": ("me.png", sample_image_bytes, "image/png")}
    response = client.post("/api/try-on", files=files, data={"count": "9"})
    assert response.status_code == 400


def test_try_on_returns_successful_variants(client: TestClient, monkeypatch, sample_image_bytes):
    replies = iter([image_reply("ONE"), error_reply(400, "bad request")])
    calls = _stub_gemini(monkeypatch, lambda _payload: next(replies))

    files = {
        "subject_image": ("me.png", sample_image_bytes, "image/png"),
        "garment_image": ("shirt.png", sample_image_bytes, "image/png"),
    }
    data = {"count": "2", "aspect_ratio": "1:1", "resolution": "1K", "instructions": "tucked in"}
    response = client.post("/api/try-on", files=files, data=data)

    assert response.status_code == 200
    assert response.json() == {"images": ["data:image/png;base64,ONE"]}
    assert len(calls) == 2
    assert calls[0]["generationConfig"]["imageConfig"] == {"aspectRatio": "1:1", "imageSize": "1K"}


def test_try_on_safety_block_surfaces_kind(client: TestClient, monkeypatch, sample_image_bytes):
    _stub_gemini(monkeypatch, lambda _payload: image_reply(finish_reason="SAFETY"))

    files = {
        "subject_image": ("me.png", sample_image_bytes, "image/png"),
        "accessory_image": ("hat.png", sample_image_bytes, "image/png"),
    }
    response = client.post("/api/try-on", files=files)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["kind"] == "SafetyBlocked"
    assert "different" in detail["message"]


def test_try_on_with_saved_model(client: TestClient, monkeypatch, sample_image_bytes):
    calls = _stub_gemini(monkeypatch, lambda _payload: image_reply())

    saved = client.post("/api/library", files={"image": ("me.png", sample_image_bytes, "image/png")}).json()
    response = client.post(
        "/api/try-on",
        files={"garment_image": ("shirt.png", sample_image_bytes, "image/png")},
        data={"saved_model_id": saved["id"]},
    )
    assert response.status_code == 200
    assert len(calls) == 1

    response = client.post(
        "/api/try-on",
        files={"garment_image": ("shirt.png", sample_image_bytes, "image/png")},
        data={"saved_model_id": "missing"},
    )
    assert response.status_code == 404


def test_background_from_data_url(client: TestClient, monkeypatch):
    calls = _stub_gemini(monkeypatch, lambda _payload: image_reply("BG"))

    response = client.post(
        "/api/background",
        data={"image_url": "data:image/png;base64,UkVTVUxU", "prompt": "a rooftop at dusk"},
    )

    assert response.status_code == 200
    assert response.json() == {"image": "data:image/png;base64,BG"}
    assert "a rooftop at dusk" in calls[0]["contents"][0]["parts"][-1]["text"]


def test_background_upstream_permission_error(client: TestClient, monkeypatch, sample_image_bytes):
    _stub_gemini(monkeypatch, lambda _payload: error_reply(403, '{"error": {"status": "PERMISSION_DENIED"}}'))

    response = client.post("/api/background", files={"image": ("me.png", sample_image_bytes, "image/png")})
    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "PermissionDenied"


def test_background_batch_invalid_prompts(client: TestClient, sample_image_bytes):
    files = {"image": ("me.png", sample_image_bytes, "image/png")}
    assert client.post("/api/background/batch", files=files, data={"prompts": "not json"}).status_code == 400
    assert client.post("/api/background/batch", files=files, data={"prompts": '{"a": 1}'}).status_code == 400
    assert client.post("/api/background/batch", files=files, data={"prompts": "[]"}).status_code == 400


def test_background_batch_partial_success(client: TestClient, monkeypatch, sample_image_bytes):
    def reply(payload):
        if "studio" in payload["contents"][0]["parts"][-1]["text"]:
            return image_reply("STUDIO")
        return error_reply(400, "bad request")

    _stub_gemini(monkeypatch, reply)

    files = {"image": ("me.png", sample_image_bytes, "image/png")}
    response = client.post(
        "/api/background/batch", files=files, data={"prompts": json.dumps(["white studio", "forest"])}
    )

    assert response.status_code == 200
    assert response.json() == {"images": ["data:image/png;base64,STUDIO"], "requested": 2}


def test_analyze_outfit_and_video_prompts(client: TestClient, monkeypatch, sample_image_bytes):
    def reply(payload):
        if "systemInstruction" in payload:
            return text_reply(json.dumps({"prompts": ["slow pan", "twirl", "walk"]}))
        return text_reply("Black leather jacket, white tee.")

    _stub_gemini(monkeypatch, reply)

    response = client.post("/api/analyze-outfit", files={"image": ("me.png", sample_image_bytes, "image/png")})
    assert response.status_code == 200
    analysis = response.json()["analysis"]
    assert analysis == "Black leather jacket, white tee."

    response = client.post("/api/video-prompts", data={"analysis": analysis, "count": "3"})
    assert response.status_code == 200
    assert response.json() == {"prompts": ["slow pan", "twirl", "walk"]}


def test_video_prompts_malformed_json_is_502(client: TestClient, monkeypatch):
    _stub_gemini(monkeypatch, lambda _payload: text_reply("not json at all"))

    response = client.post("/api/video-prompts", data={"analysis": "jacket", "count": "2"})
    assert response.status_code == 502
    assert response.json()["detail"]["kind"] == "MalformedStructuredResponse"


def test_library_save_dedup_and_delete(client: TestClient, sample_image_bytes):
    files = {"image": ("me.png", sample_image_bytes, "image/png")}

    first = client.post("/api/library", files=files).json()
    assert first["saved"] is True
    assert len(first["models"]) == 1

    second = client.post("/api/library", files=files).json()
    assert second["saved"] is False
    assert len(second["models"]) == 1

    listed = client.get("/api/library").json()["models"]
    assert listed[0]["id"] == first["id"]
    assert listed[0]["mimeType"] == "image/png"

    assert client.delete(f"/api/library/{first['id']}").json() == {"models": []}
    assert client.delete(f"/api/library/{first['id']}").status_code == 404


def test_library_requires_an_image(client: TestClient):
    assert client.post("/api/library").status_code == 400


def test_background_blank_prompt_uses_default(client: TestClient, monkeypatch, sample_image_bytes):
    from swapnet.prompts import DEFAULT_BACKGROUND_PROMPT

    calls = _stub_gemini(monkeypatch, lambda _payload: image_reply())

    response = client.post("/api/background", files={"image": ("me.png", sample_image_bytes, "image/png")})

    assert response.status_code == 200
    assert f"Replace background with: {DEFAULT_BACKGROUND_PROMPT}" in calls[0]["contents"][0]["parts"][-1]["text"]


def test_background_endpoints_validate_resolution_and_data_url(client: TestClient, monkeypatch, sample_image_bytes):
    calls = _stub_gemini(monkeypatch, lambda _payload: image_reply())
    files = {"image": ("me.png", sample_image_bytes, "image/png")}

    response = client.post("/api/background", files=files, data={"resolution": "8K"})
    assert response.status_code == 400
    response = client.post(
        "/api/background/batch", files=files, data={"prompts": '["beach"]', "resolution": "8K"}
    )
    assert response.status_code == 400

    response = client.post("/api/background", data={"image_url": "https://example.com/me.png"})
    assert response.status_code == 400
    response = client.post(
        "/api/background/batch", data={"image_url": "not a data url", "prompts": '["beach"]'}
    )
    assert response.status_code == 400
    assert client.post("/api/library", data={"image_url": "plain text"}).status_code == 400

    assert calls == []
