import json
import logging
import os
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RedisConfig(BaseModel):
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(default=100, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=900, ge=1, description="Rate limit window in seconds")


class StorageConfig(BaseModel):
    download_dir: str = Field(default="downloads", description="Storage root for files awaiting delivery")
    max_file_age_ms: int = Field(default=24 * 60 * 60 * 1000, ge=1000, description="Age in ms after which files are swept")
    sweep_interval_seconds: int = Field(default=3600, ge=1, description="Seconds between sweeps")


class DownloadConfig(BaseModel):
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Max concurrent downloads")
    timeout_seconds: int = Field(default=3600, ge=60, description="Download timeout in seconds")
    chunk_size: int = Field(default=1024 * 1024, ge=1024, description="Chunk size for streamed copies")


class ExtractorConfig(BaseModel):
    backend: Literal["ytdlp", "cobalt"] = Field(default="ytdlp", description="Extraction backend")
    max_formats: int = Field(default=10, ge=1, description="Max formats returned by detect")
    default_format: str = Field(default="best", description="Format used when none is requested")
    placeholder_thumbnail: str = Field(
        default="https://placehold.co/600x400/1e293b/FFF?text=Video+Found",
        description="Thumbnail used when the backend reports none",
    )


class YtDlpConfig(BaseModel):
    binary: str = Field(default="yt-dlp", description="yt-dlp executable")
    info_timeout: float = Field(default=30.0, gt=0, description="Timeout for metadata probes in seconds")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp")
    retries: int = Field(default=3, ge=0, description="Number of retries inside yt-dlp")
    js_runtime: Optional[str] = Field(default=None, description="JS runtime (e.g., deno:/usr/local/bin/deno)")
    user_agent: Optional[str] = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/122.0.0.0 Safari/537.36"
        ),
        description="User agent passed to yt-dlp",
    )
    no_check_certificate: bool = Field(default=False, description="Skip TLS verification in yt-dlp")


class CobaltConfig(BaseModel):
    api_url: str = Field(default="https://api.cobalt.tools/", description="Cobalt API endpoint")
    api_key: Optional[str] = Field(default=None, description="Cobalt API key")
    video_quality: str = Field(default="1080", description="Requested video quality")
    video_codec: str = Field(default="h264", description="Requested YouTube video codec")
    audio_format: str = Field(default="mp3", description="Audio format for audio-only downloads")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    user_agent: str = Field(default="vidrelay/1.0", description="User agent sent to Cobalt")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="[%(request_id)s] %(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "pt"], description="Supported locales")


class ApiConfig(BaseModel):
    title: str = Field(default="vidrelay", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3001, ge=1, le=65535, description="Bind port")
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    trust_proxy: bool = Field(default=False, description="Use X-Forwarded-For for the client address")
    debug: bool = Field(default=False, description="Enable debug mode")


class Config(BaseSettings):
    """Main configuration model"""
    model_config = SettingsConfigDict(env_prefix="VIDRELAY_", env_nested_delimiter="__", extra="ignore")

    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    cobalt: CobaltConfig = Field(default_factory=CobaltConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @staticmethod
    def read_file(config_path: str) -> Dict[str, Any]:
        """Read a JSON config file, returning an empty dict when unusable"""
        if not os.path.exists(config_path):
            logger.warning(f"Config file {config_path} not found, using defaults")
            return {}
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return config_data
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {config_path}: {str(e)}")
            return {}

    @staticmethod
    def read_env() -> Dict[str, Any]:
        """Collect the plain (unprefixed) environment variables"""
        config_data: Dict[str, Dict[str, Any]] = {}

        def put(section: str, key: str, value: Any) -> None:
            config_data.setdefault(section, {})[key] = value

        # Storage
        if os.getenv("DOWNLOAD_DIR"):
            put("storage", "download_dir", os.getenv("DOWNLOAD_DIR"))
        if os.getenv("MAX_FILE_AGE"):
            put("storage", "max_file_age_ms", int(os.getenv("MAX_FILE_AGE")))
        if os.getenv("SWEEP_INTERVAL"):
            put("storage", "sweep_interval_seconds", int(os.getenv("SWEEP_INTERVAL")))

        # API
        if os.getenv("PORT"):
            put("api", "port", int(os.getenv("PORT")))
        if os.getenv("HOST"):
            put("api", "host", os.getenv("HOST"))
        origins = os.getenv("CORS_ORIGIN") or os.getenv("CLIENT_URL")
        if origins:
            put("api", "cors_origins", [o.strip() for o in origins.split(",") if o.strip()])
        if os.getenv("DEBUG"):
            put("api", "debug", os.getenv("DEBUG").lower() == "true")
        if os.getenv("TRUST_PROXY"):
            put("api", "trust_proxy", os.getenv("TRUST_PROXY").lower() == "true")

        # Rate limiting
        if os.getenv("RATE_LIMIT_REQUESTS"):
            put("rate_limit", "max_requests", int(os.getenv("RATE_LIMIT_REQUESTS")))
        if os.getenv("RATE_LIMIT_WINDOW"):
            put("rate_limit", "window_seconds", int(os.getenv("RATE_LIMIT_WINDOW")))

        # Redis
        if os.getenv("REDIS_URL"):
            put("redis", "url", os.getenv("REDIS_URL"))

        # Download
        if os.getenv("MAX_CONCURRENT_DOWNLOADS"):
            put("download", "max_concurrent", int(os.getenv("MAX_CONCURRENT_DOWNLOADS")))
        if os.getenv("DOWNLOAD_TIMEOUT"):
            put("download", "timeout_seconds", int(os.getenv("DOWNLOAD_TIMEOUT")))

        # Extraction backend
        if os.getenv("EXTRACTOR_BACKEND"):
            put("extractor", "backend", os.getenv("EXTRACTOR_BACKEND").lower())
        if os.getenv("COBALT_API_URL"):
            put("cobalt", "api_url", os.getenv("COBALT_API_URL"))
        if os.getenv("COBALT_API_KEY"):
            put("cobalt", "api_key", os.getenv("COBALT_API_KEY"))
        if os.getenv("YT_DLP_JS_RUNTIME"):
            put("ytdlp", "js_runtime", os.getenv("YT_DLP_JS_RUNTIME"))

        # Logging
        if os.getenv("LOG_LEVEL"):
            put("logging", "level", os.getenv("LOG_LEVEL"))

        # i18n
        if os.getenv("DEFAULT_LOCALE"):
            put("i18n", "default_locale", os.getenv("DEFAULT_LOCALE"))

        return config_data

    @property
    def max_file_age_seconds(self) -> float:
        return self.storage.max_file_age_ms / 1000.0


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config() -> Config:
    """Load configuration with priority: plain env vars > config file > VIDRELAY_* env > defaults"""
    config_data: Dict[str, Any] = {}

    config_path = os.getenv("CONFIG_PATH")
    if config_path:
        config_data = Config.read_file(config_path)

    config_data = _merge(config_data, Config.read_env())
    return Config(**config_data)


# Global config instance
config = load_config()
