from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # --- File Limits ---
    max_file_size_mb: int = 32
    max_file_size_bytes: int = 0  # Computed in model_post_init

    # --- Encoder ---
    encode_max_attempts: int = 5
    encode_quality_step: float = 0.1
    encode_quality_floor: float = 0.6
    encode_quality_reset: float = 0.8
    encode_resize_factor: float = 0.8
    webp_method: int = 4  # Good compression, 2-3x faster than method=6

    # --- Listing Tiers ---
    car_max_images: int = 10
    car_featured_max_images: int = 15
    part_max_images: int = 5
    part_featured_max_images: int = 10
    logo_max_size_kb: int = 100

    # --- Storage ---
    car_images_bucket: str = "car-images"
    part_images_bucket: str = "spare-part-images"
    logo_bucket: str = "showroom-logos"
    gcs_project: str = ""

    # --- Record Store ---
    records_api_url: str = ""
    records_api_key: str = ""
    records_timeout_seconds: int = 30

    # --- Previews ---
    preview_dir: str = ""  # empty = system temp dir

    # --- Logging ---
    log_level: str = "ERROR"

    model_config = {"env_prefix": "", "case_sensitive": False}

    def model_post_init(self, __context) -> None:
        if self.max_file_size_bytes == 0:
            self.max_file_size_bytes = self.max_file_size_mb * 1024 * 1024


settings = Settings()
