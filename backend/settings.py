import os

# Basic settings helper to read environment configuration.

ACCESS_POINTS_URL = (
    "https://services9.arcgis.com/wwVnNW92ZHUIr0V0/arcgis/rest/services/AccessPoints/FeatureServer/0"
)
ACCESS_POINTS_WHERE = (
    "COUNTY IN ('Santa Barbara', 'Ventura', 'Los Angeles', 'Orange', "
    "'San Diego', 'San Luis Obispo', 'Imperial')"
)
CITIES_URL = (
    "https://services3.arcgis.com/uknczv4rpevve42E/arcgis/rest/services/"
    "California_Cities_and_Identifiers_Blue_Version_view/FeatureServer/2"
)
CITIES_WHERE = (
    "CDTFA_COUNTY in ('Santa Barbara County', 'Ventura County', 'Los Angeles County', "
    "'Orange County', 'San Diego County', 'San Luis Obispo County', 'Imperial County')"
)
PLACES_BASE_URL = "https://places-api.arcgis.com/arcgis/rest/services/places-service/v1"


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    return float(val)


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    return int(val)


def _as_optional(val: str | None) -> str | None:
    if val is None or not val.strip():
        return None
    return val.strip()


class Settings:
    def __init__(self) -> None:
        self.ARCGIS_API_KEY: str | None = _as_optional(os.getenv("ARCGIS_API_KEY"))

        self.ACCESS_POINTS_URL: str = os.getenv("ACCESS_POINTS_URL", ACCESS_POINTS_URL)
        self.ACCESS_POINTS_WHERE: str | None = _as_optional(
            os.getenv("ACCESS_POINTS_WHERE", ACCESS_POINTS_WHERE)
        )
        # Polygon seed layer; the join runs on access points alone when unset.
        self.COASTAL_BUFFER_URL: str | None = _as_optional(os.getenv("COASTAL_BUFFER_URL"))
        self.COASTAL_BUFFER_WHERE: str | None = _as_optional(os.getenv("COASTAL_BUFFER_WHERE"))
        self.CITIES_URL: str = os.getenv("CITIES_URL", CITIES_URL)
        self.CITIES_WHERE: str | None = _as_optional(os.getenv("CITIES_WHERE", CITIES_WHERE))
        self.CITY_NAME_FIELD: str = os.getenv("CITY_NAME_FIELD", "CDTFA_CITY")

        self.PLACES_BASE_URL: str = os.getenv("PLACES_BASE_URL", PLACES_BASE_URL).rstrip("/")
        self.SEARCH_RADIUS_METERS: float = _as_float(os.getenv("SEARCH_RADIUS_METERS"), 500.0)
        self.DEFAULT_CATEGORY_ID: str = os.getenv(
            "DEFAULT_CATEGORY_ID", "4d4b7105d754a06377d81259"
        )

        self.MAX_CONCURRENT_QUERIES: int = max(1, _as_int(os.getenv("MAX_CONCURRENT_QUERIES"), 8))
        self.HTTP_TIMEOUT_SECONDS: float = _as_float(os.getenv("HTTP_TIMEOUT_SECONDS"), 10.0)
        self.HTTP_MIN_INTERVAL: float = _as_float(os.getenv("HTTP_MIN_INTERVAL"), 0.0)
        self.HTTP_USER_AGENT: str = os.getenv("HTTP_USER_AGENT", "coastal-places-explorer/0.1")
        self.HTTP_VERIFY_TLS: bool = _as_bool(os.getenv("HTTP_VERIFY_TLS"), True)


settings = Settings()
