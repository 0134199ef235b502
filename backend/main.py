from fastapi import FastAPI, UploadFile, File, HTTPException, Form
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional
import uvicorn
import os
import sys
import json
import logging
from pathlib import Path
from dotenv import load_dotenv

# Add current directory to path to find the swapnet package
sys.path.insert(0, str(Path(__file__).parent))

load_dotenv()

from swapnet import config
from swapnet.credentials import CredentialStore
from swapnet.errors import StudioError
from swapnet.library import SavedModelLibrary
from swapnet.models import ImageAsset
from swapnet.orchestrator import StudioOrchestrator
from swapnet.storage import get_key_value_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SwapNet Studio API")

# Configure CORS
# Format: comma-separated list, e.g., "https://studio.example.com,https://www.example.com"
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
if allowed_origins_str:
    allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]
else:
    # Default: allow the local dev server
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# File upload limits
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 10 * 1024 * 1024))  # 10MB default
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/heic", "image/heif"}
MAX_VARIANTS = 4
MAX_PROMPTS = 10

storage = get_key_value_store(base_dir=config.DATA_DIR)
credentials = CredentialStore(storage)
library = SavedModelLibrary(storage)
orchestrator = StudioOrchestrator(credentials)


async def read_image(upload: Optional[UploadFile], label: str) -> Optional[ImageAsset]:
    """Validate an uploaded image and turn it into an ImageAsset. Missing uploads give None."""
    if upload is None or not upload.filename:
        return None

    content_type = (upload.content_type or "").lower()
    if content_type and content_type not in ALLOWED_IMAGE_TYPES and content_type != "application/octet-stream":
        raise HTTPException(
            status_code=400,
            detail=f"{label} validation failed: invalid file type. Allowed types: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
        )

    contents = await upload.read()
    if not contents:
        raise HTTPException(status_code=400, detail=f"{label} is empty")
    if len(contents) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"{label} too large. Maximum size: {MAX_FILE_SIZE / (1024*1024):.1f}MB"
        )
    return ImageAsset.from_bytes(contents, content_type or None)


def check_resolution(resolution: str) -> None:
    if resolution not in config.SUPPORTED_RESOLUTIONS:
        raise HTTPException(status_code=400, detail=f"resolution must be one of {', '.join(config.SUPPORTED_RESOLUTIONS)}")


def read_data_url(image_url: Optional[str], label: str) -> Optional[str]:
    """Accept a previously generated image passed back as a base64 data URL."""
    if not image_url:
        return None
    if not image_url.startswith("data:image/") or ";base64," not in image_url:
        raise HTTPException(status_code=400, detail=f"{label} must be a base64 image data URL")
    return image_url


def to_http_error(e: Exception, endpoint: str) -> HTTPException:
    """Translate a failure into the HTTP response the UI shows."""
    if isinstance(e, StudioError):
        logger.warning(f"{endpoint} failed: {e.kind}: {e.message}")
        return HTTPException(status_code=e.status_code, detail={"kind": e.kind, "message": e.message})
    logger.error(f"Error in {endpoint} endpoint: {type(e).__name__}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail={"kind": "InternalError", "message": str(e) or "Processing failed."})


@app.get("/")
async def root():
    return {"message": "SwapNet Studio API is running"}


@app.get("/api/credential")
async def credential_status():
    return {
        "configured": credentials.resolve() is not None,
        "override": credentials.has_override(),
    }


@app.put("/api/credential")
async def set_credential(api_key: str = Form(...)):
    try:
        credentials.set(api_key)
    except StudioError as e:
        raise to_http_error(e, "set-credential")
    return {"configured": True, "override": True}


@app.delete("/api/credential")
async def clear_credential():
    credentials.clear()
    return {"configured": credentials.resolve() is not None, "override": False}


@app.post("/api/try-on")
async def try_on(
    subject_image: Optional[UploadFile] = File(None),
    garment_image: Optional[UploadFile] = File(None),
    garment_detail_image: Optional[UploadFile] = File(None),
    accessory_image: Optional[UploadFile] = File(None),
    saved_model_id: Optional[str] = Form(None),
    instructions: str = Form(""),
    aspect_ratio: str = Form(config.DEFAULT_ASPECT_RATIO),
    resolution: str = Form(config.DEFAULT_RESOLUTION),
    model_id: str = Form(config.DEFAULT_IMAGE_MODEL),
    count: int = Form(1),
):
    """
    Virtual try-on. The subject comes from an upload or from the saved model library.
    Returns every variant that succeeded.
    """
    if count < 1 or count > MAX_VARIANTS:
        raise HTTPException(status_code=400, detail=f"count must be between 1 and {MAX_VARIANTS}")
    check_resolution(resolution)

    subject = await read_image(subject_image, "Subject image")
    if subject is None and saved_model_id:
        subject = library.get(saved_model_id)
        if subject is None:
            raise HTTPException(status_code=404, detail="Saved model not found")
    garment = await read_image(garment_image, "Garment image")
    garment_detail = await read_image(garment_detail_image, "Garment detail image")
    accessory = await read_image(accessory_image, "Accessory image")

    logger.info(f"Try-on request received: model={model_id}, count={count}")
    try:
        images = await orchestrator.generate_virtual_try_on(
            subject,
            garment,
            garment_detail,
            accessory,
            instructions,
            aspect_ratio,
            resolution,
            model_id,
            count,
        )
    except Exception as e:
        raise to_http_error(e, "try-on")
    return {"images": images}


@app.post("/api/background")
async def change_background(
    image: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    detail_image: Optional[UploadFile] = File(None),
    custom_background_image: Optional[UploadFile] = File(None),
    prompt: str = Form(""),
    aspect_ratio: str = Form(config.DEFAULT_ASPECT_RATIO),
    resolution: str = Form(config.DEFAULT_RESOLUTION),
    model_id: str = Form(config.DEFAULT_IMAGE_MODEL),
):
    """Background change for an uploaded image or a data URL (e.g. a previous try-on result)."""
    check_resolution(resolution)
    source = await read_image(image, "Image") or read_data_url(image_url, "image_url")
    detail = await read_image(detail_image, "Detail image")
    custom_bg = await read_image(custom_background_image, "Custom background image")

    logger.info(f"Background change request received: model={model_id}, custom_bg={custom_bg is not None}")
    try:
        result = await orchestrator.change_image_background(
            source,
            prompt,
            detail,
            aspect_ratio,
            resolution,
            model_id,
            custom_bg,
        )
    except Exception as e:
        raise to_http_error(e, "background")
    return {"image": result}


@app.post("/api/background/batch")
async def change_background_batch(
    prompts: str = Form(...),  # JSON list of strings
    image: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    detail_image: Optional[UploadFile] = File(None),
    aspect_ratio: str = Form(config.DEFAULT_ASPECT_RATIO),
    resolution: str = Form(config.DEFAULT_RESOLUTION),
    model_id: str = Form(config.DEFAULT_IMAGE_MODEL),
):
    try:
        prompt_list = json.loads(prompts)
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse prompts: {e}")
        raise HTTPException(status_code=400, detail="prompts must be a JSON list of strings")
    if not isinstance(prompt_list, list) or not all(isinstance(p, str) for p in prompt_list):
        raise HTTPException(status_code=400, detail="prompts must be a JSON list of strings")
    if not prompt_list or len(prompt_list) > MAX_PROMPTS:
        raise HTTPException(status_code=400, detail=f"Provide between 1 and {MAX_PROMPTS} prompts")

    check_resolution(resolution)
    source = await read_image(image, "Image") or read_data_url(image_url, "image_url")
    detail = await read_image(detail_image, "Detail image")

    logger.info(f"Batch background request received for {len(prompt_list)} prompt(s)")
    try:
        images = await orchestrator.change_image_background_batch(
            source,
            prompt_list,
            detail,
            aspect_ratio,
            resolution,
            model_id,
        )
    except Exception as e:
        raise to_http_error(e, "background-batch")
    return {"images": images, "requested": len(prompt_list)}


@app.post("/api/analyze-outfit")
async def analyze_outfit(
    image: UploadFile = File(...),
    detail_image: Optional[UploadFile] = File(None),
):
    subject = await read_image(image, "Image")
    detail = await read_image(detail_image, "Detail image")
    try:
        analysis = await orchestrator.analyze_outfit(subject, detail)
    except Exception as e:
        raise to_http_error(e, "analyze-outfit")
    return {"analysis": analysis}


@app.post("/api/video-prompts")
async def video_prompts(
    analysis: str = Form(...),
    count: int = Form(3),
):
    if count < 1 or count > MAX_PROMPTS:
        raise HTTPException(status_code=400, detail=f"count must be between 1 and {MAX_PROMPTS}")
    try:
        prompt_list = await orchestrator.generate_prompts_from_analysis(analysis, count)
    except Exception as e:
        raise to_http_error(e, "video-prompts")
    return {"prompts": prompt_list}


@app.get("/api/library")
async def list_library():
    return {"models": [m.to_storage() for m in library.list()]}


@app.post("/api/library")
async def save_to_library(
    image: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
):
    asset = await read_image(image, "Image")
    data_url = read_data_url(image_url, "image_url")
    if asset is None and data_url:
        asset = ImageAsset.from_data_url(data_url)
    if asset is None:
        raise HTTPException(status_code=400, detail="An image or image_url is required")

    saved = library.save(asset)
    return {"saved": saved, "id": asset.id, "models": [m.to_storage() for m in library.list()]}


@app.delete("/api/library/{asset_id}")
async def delete_from_library(asset_id: str):
    if not library.delete(asset_id):
        raise HTTPException(status_code=404, detail="Saved model not found")
    return {"models": [m.to_storage() for m in library.list()]}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=True,
        timeout_keep_alive=600,  # 10 minutes for long-running requests
        timeout_graceful_shutdown=30
    )
