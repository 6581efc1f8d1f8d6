"""Configuration management for the FoodVision gateway."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_CLASSES = (
    "chicken_curry",
    "chicken_wings",
    "fried_rice",
    "grilled_salmon",
    "hamburger",
    "ice_cream",
    "pizza",
    "ramen",
    "steak",
    "sushi",
)


class Settings(BaseSettings):
    project: str = Field("bangkit-academy-437808", alias="FOODVISION_PROJECT")
    region: str = Field("us-central1", alias="FOODVISION_REGION")
    model_name: str = Field("food_vision", alias="FOODVISION_MODEL")
    model_version: Optional[str] = Field(None, alias="FOODVISION_MODEL_VERSION")
    endpoint: Optional[str] = Field(None, alias="FOODVISION_ENDPOINT")
    credentials_path: Optional[str] = Field(None, alias="GOOGLE_APPLICATION_CREDENTIALS")
    class_names_raw: str = Field(",".join(DEFAULT_CLASSES), alias="FOODVISION_CLASSES")
    class_names_file: Optional[str] = Field(None, alias="FOODVISION_CLASSES_FILE")
    image_size: int = Field(224, alias="FOODVISION_IMAGE_SIZE", gt=0)
    max_upload_bytes: int = Field(10 * 1024 * 1024, alias="FOODVISION_MAX_UPLOAD_BYTES", gt=0)
    predict_timeout: float = Field(30.0, alias="FOODVISION_PREDICT_TIMEOUT", gt=0)
    host: str = Field("localhost", alias="HOST")
    port: int = Field(3000, alias="PORT")
    cors_origins_raw: str = Field("http://localhost:3000", alias="CORS_ORIGINS")
    log_dir: str = Field("logs", alias="FOODVISION_LOG_DIR")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        populate_by_name = True
        protected_namespaces = ()

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin]

    @property
    def class_names(self) -> List[str]:
        return [name.strip() for name in self.class_names_raw.split(",") if name.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
