from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    env: str = "dev"
    log_level: str = "INFO"

    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    # Login sessions last 3 hours
    access_token_expire_minutes: int = 180
    password_hash_rounds: int = 10

    database_url: str = "postgresql+psycopg2://bookhub:bookhub@db:5432/bookhub"
    backend_cors_origins: str = "http://localhost:5173"

    books_page_size: int = 10

    upload_dir: str = "public/uploads"
    max_upload_bytes: int = 5 * 1024 * 1024
    cover_image_folder: str = "book-covers"
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    image_release_attempts: int = 3
    image_release_backoff_seconds: float = 0.5

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()


def get_settings() -> Settings:
    return settings
