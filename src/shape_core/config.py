"""Pipeline configuration."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Korean TM (central meridian 127.5) used when a layer ships without a .prj
KOREA_TM_WKT = (
    'PROJCS["PCS_ITRF2000_TM",GEOGCS["GCS_ITRF_2000",DATUM["D_ITRF_2000",'
    'SPHEROID["GRS_1980",6378137.0,298.257222101]],PRIMEM["Greenwich",0.0],'
    'UNIT["Degree",0.0174532925199433]],PROJECTION["Transverse_Mercator"],'
    'PARAMETER["False_Easting",1000000.0],PARAMETER["False_Northing",2000000.0],'
    'PARAMETER["Central_Meridian",127.5],PARAMETER["Scale_Factor",0.9996],'
    'PARAMETER["Latitude_Of_Origin",38.0],UNIT["Meter",1.0]]'
)

TOKYO_GEOGRAPHIC_WKT = (
    'GEOGCS["GCS_Tokyo",DATUM["D_Tokyo",SPHEROID["Bessel_1841",6377397.155,299.1528128]],'
    'PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SHAPE_CORE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "info"

    # Coordinate systems
    default_source_crs: str = KOREA_TM_WKT
    target_crs: str = TOKYO_GEOGRAPHIC_WKT

    # Reprojection worker count (None = CPU count, falling back to 4)
    reproject_workers: int | None = None

    # Douglas-Peucker tolerance in target CRS units
    simplify_epsilon: float = 0.001

    # Attribute text codec
    dbf_encoding: str = "cp949"

    # Grid domain (lng/lat of the Korean peninsula) and tile size in degrees
    domain_min_x: float = 124.0
    domain_max_x: float = 132.0
    domain_min_y: float = 33.06
    domain_max_y: float = 38.8
    tile_width: float = 1.0
    tile_height: float = 1.0

    # Hit testing
    hit_threshold_km: float = 10.0
    simplified_scale_threshold: float = 3.0

    @field_validator("tile_width", "tile_height", "hit_threshold_km")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("reproject_workers")
    @classmethod
    def workers_at_least_one(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("reproject_workers must be at least 1")
        return v


settings = Settings()
