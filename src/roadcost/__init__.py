"""Cost estimation pipeline for road-safety audit interventions."""

from .api import EstimateOptions, estimate
from .config import Config, load_config
from .models import EstimateTotal, Intervention, MaterialRequirement, StandardMapping
from .pipeline import EstimatePipeline, PipelineSettings, reprice
from .price_resolver import PriceResolver
from .reference_data import ReferenceDataset

__all__ = [
    "Config",
    "EstimateOptions",
    "EstimatePipeline",
    "EstimateTotal",
    "Intervention",
    "MaterialRequirement",
    "PipelineSettings",
    "PriceResolver",
    "ReferenceDataset",
    "StandardMapping",
    "estimate",
    "load_config",
    "reprice",
]
