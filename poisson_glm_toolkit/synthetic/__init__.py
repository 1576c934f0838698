"""
Synthetic data generation and spike simulation for the Poisson GLM Toolkit.

This package provides tools for generating stimulus-response data with known
ground truth and for drawing Poisson spike rasters from predicted rates.
"""

from .data_generator import SyntheticDataGenerator, create_biphasic_filter
from .spike_simulator import SpikeSimulator, simulate_spikes

__all__ = [
    'SyntheticDataGenerator',
    'create_biphasic_filter',
    'SpikeSimulator',
    'simulate_spikes'
]
