"""Upstream data-provider adapters, one per layer kind."""

from .air_quality import AirQualityAdapter
from .base import ProviderAdapter
from .demographics import DemographicsAdapter
from .hazards import HazardAdapter
from .registry import ProviderRegistry, build_default_registry
from .vegetation import GreenSpaceAdapter
from .weather import WeatherAdapter

__all__ = [
    "AirQualityAdapter",
    "DemographicsAdapter",
    "GreenSpaceAdapter",
    "HazardAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
    "WeatherAdapter",
    "build_default_registry",
]
