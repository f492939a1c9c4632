from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    gtfs_urban_static_url: str = "https://data.montpellier3m.fr/GTFS/Urbain/GTFS.zip"
    gtfs_suburban_static_url: str = "https://data.montpellier3m.fr/GTFS/Suburbain/GTFS.zip"
    gtfs_urban_rt_url: str = "https://data.montpellier3m.fr/GTFS/Urbain/VehiclePosition.pb"
    gtfs_suburban_rt_url: str = "https://data.montpellier3m.fr/GTFS/Suburbain/VehiclePosition.pb"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    overpass_bbox: str = "43.5,3.7,43.7,4.05"  # south,west,north,east
    overpass_bus_network: str = "TaM"
    osm_route_kinds: list[str] = ["Tram", "Bus"]
    redis_url: str = "redis://localhost:6379/0"
    poll_interval_seconds: int = 10
    schedule_refresh_hours: int = 24
    fetch_retries: int = 3
    fetch_initial_delay_ms: int = 1000
    fetch_timeout_ms: int = 30000

    model_config = {"env_prefix": "", "case_sensitive": False}

    @property
    def static_feed_urls(self) -> list[str]:
        # Order matters: later feeds override earlier ones on identical keys
        return [self.gtfs_urban_static_url, self.gtfs_suburban_static_url]

    @property
    def realtime_feed_urls(self) -> list[str]:
        return [self.gtfs_urban_rt_url, self.gtfs_suburban_rt_url]


settings = Settings()
