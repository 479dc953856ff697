"""Configuration helpers: runtime knobs and parameter snapshot persistence."""

from .runtime import SimulatorConfig, bode_frequencies, config_from_mapping, load_config
from .persistence import default_params_path, load_parameters_or_default, save_parameters

__all__ = [
    "SimulatorConfig",
    "bode_frequencies",
    "config_from_mapping",
    "load_config",
    "default_params_path",
    "load_parameters_or_default",
    "save_parameters",
]
