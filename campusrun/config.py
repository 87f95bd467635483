from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "data/campusrun.db"
    host: str = "0.0.0.0"
    port: int = 8000
    offer_timeout_seconds: int = 60
    max_distance_meters: float = 500.0
    presence_window_seconds: int = 75
    reassign_interval_seconds: int = 15
    reassign_batch_size: int = 50
    scheduler_enabled: bool = True
    legacy_rerank_enabled: bool = True
    trigger_key: str | None = None
    event_queue_size: int = 100
    geofence_enabled: bool = False
    # GeoJSON ring of [longitude, latitude] pairs, e.g. CAMPUSRUN_GEOFENCE_POLYGON='[[125.60, 7.08], ...]'
    geofence_polygon: list[tuple[float, float]] = []
    geofence_radius_meters: float = 650.0
    geofence_buffer_meters: float = 10.0

    model_config = {"env_prefix": "CAMPUSRUN_"}


settings = Settings()
