"""
Data Linking
============

Point samples, raster stacks and the calibration/validation partition.
"""

from landstack.data.raster import RasterStack, FeatureSetError
from landstack.data.linker import (
    Sample,
    SampleSet,
    OutsideExtentError,
    load_points,
    link_samples,
    sample_rasters,
)
from landstack.data.partition import Partition, split_samples

__all__ = [
    "RasterStack",
    "FeatureSetError",
    "Sample",
    "SampleSet",
    "OutsideExtentError",
    "load_points",
    "link_samples",
    "sample_rasters",
    "Partition",
    "split_samples",
]
