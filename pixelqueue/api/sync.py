"""
Synchronous Processing Route
Runs a transform inside the request and returns the JPEG directly.
No job record, no queue.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response

from pixelqueue.api.deps import get_container
from pixelqueue.core.container import Container
from pixelqueue.core.exceptions import DecodeError, TransformError, ValidationError
from pixelqueue.services.transforms import decode_image, encode_jpeg

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/process")
async def process_sync(
    image: UploadFile = File(...),
    action: str = Form(...),
    params: Optional[str] = Form(None),
    container: Container = Depends(get_container),
):
    """Transform an image synchronously."""
    settings = container.settings
    data = await image.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body too large")

    try:
        transform = container.registry.get(action)
        img = decode_image(data)
        result = container.registry.apply(transform.name, img, params or "")
        body = encode_jpeg(result, quality=settings.OUTPUT_JPEG_QUALITY)
    except (ValidationError, DecodeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except TransformError as e:
        logger.error(f"Synchronous {action} failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    filename = f"processed_{transform.name}_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.jpg"
    logger.info(f"Synchronous action {transform.name} completed and image returned.")
    return Response(
        content=body,
        media_type="image/jpeg",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
