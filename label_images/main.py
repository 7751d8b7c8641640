from fastapi import FastAPI
from contextlib import asynccontextmanager
import uvicorn
import logging

from label_images.storage.cognito import CognitoService
from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.settings import settings
from label_images.routers.image_service import router as image_router
from label_images.routers.auth import router as auth_router
from label_images.exceptions import add_exception_handlers
from label_images.responses import cors_middleware

logging.basicConfig(level=settings.log_level)
log = logging.getLogger("label-images")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Initializes and closes resources (S3, DynamoDB, Cognito) for the application.
        Services already placed on app.state (e.g. by tests) are kept.
    """
    # Initialize resources
    if getattr(app.state, "s3", None) is None:
        app.state.s3 = S3Service(settings)
    if getattr(app.state, "db", None) is None:
        app.state.db = DynamoDBService(settings)
    if getattr(app.state, "cognito", None) is None:
        app.state.cognito = CognitoService(settings)
    yield
    # Cleanup resources
    app.state.s3.close()
    app.state.db.close()
    app.state.cognito.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Image Labeling Service",
)

# Add exception handlers
add_exception_handlers(app)

# CORS - every response, OPTIONS answered as preflight
app.middleware("http")(cors_middleware)

# Add the routers
app.include_router(auth_router)
app.include_router(image_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point

    """
    return "Label Images Service is running."

if __name__ == "__main__":
    uvicorn.run("label_images.main:app", host="0.0.0.0", port=8000, reload=True)
