from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    port: int = 8003
    data_dir: str = "/data"
    files_dir: str = "/data/media"
    log_level: str = "INFO"

    # 0 = без ограничения
    max_file_size: int = 100 * 1024 * 1024
    # пустой список = разрешены все типы
    allowed_types: list[str] = []

    thumbnail_enabled: bool = True
    thumbnail_width: int = 320
    thumbnail_height: int = 180
    ffmpeg_path: str = "ffmpeg"
    ffmpeg_timeout: float = 30.0

    stream_chunk_size: int = 64 * 1024

    @property
    def db_url(self) -> str:
        # sqlite файл
        return f"sqlite:///{self.data_dir.rstrip('/')}/media_service.db"


settings = Settings()
