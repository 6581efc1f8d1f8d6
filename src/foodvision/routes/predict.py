"""Endpoint for image classification."""
from fastapi import APIRouter, File, Request, Response, UploadFile, status

from ..errors import RequestCancelled
from ..services.pipeline import PredictionPipeline

router = APIRouter()

# nginx's "client closed request"; the server drops it for a closed connection.
CLIENT_CLOSED_REQUEST = 499


@router.post("/predict", status_code=status.HTTP_200_OK)
async def predict_image(request: Request, file: UploadFile = File(...)) -> dict:
    """Classify an uploaded image and return the top label with its confidence."""
    pipeline: PredictionPipeline = request.app.state.pipeline
    try:
        result = await pipeline.run(file, is_disconnected=request.is_disconnected)
    except RequestCancelled:
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    finally:
        await file.close()
    return result.to_response()
