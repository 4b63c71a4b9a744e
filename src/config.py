"""
Configuration System for Conjugate-Gradient Inversion
=====================================================

JSON-based configuration management for flexible parameter control.
"""

import json
from dataclasses import dataclass, field, asdict, replace
from typing import Optional, Dict, Any
from pathlib import Path


INITIALIZATIONS = ("background", "backpropagation", "exact", "warm")
STEP_METHODS = ("closed_form", "golden")


@dataclass
class InversionConfig:
    """Configuration of the conjugate-gradient iterations."""
    maxit: int = 150
    delta_r: float = 1e-4
    delta_i: float = 1e-4
    lambda_r: float = 1e-7
    lambda_i: float = 1e-7
    potential: str = "geman_mcclure"  # "geman_mcclure", "hebert_leahy", "green", "quadratic"
    initialization: str = "backpropagation"  # "background", "backpropagation", "exact", "warm"
    warm_start_file: Optional[str] = None  # Result file, for initialization == "warm"
    step_method: str = "closed_form"  # "closed_form" or "golden"
    fallback_to_golden: bool = False
    golden_tol: float = 1e-6
    golden_maxiter: int = 100

    def validate(self):
        """Raise ValueError on inconsistent settings."""
        if self.maxit < 0:
            raise ValueError(f"maxit must be non-negative, got {self.maxit}")
        if self.delta_r <= 0 or self.delta_i <= 0:
            raise ValueError("delta_r and delta_i must be positive")
        if self.initialization not in INITIALIZATIONS:
            raise ValueError(f"Unknown initialization '{self.initialization}'. "
                             f"Available: {', '.join(INITIALIZATIONS)}")
        if self.initialization == "warm" and self.warm_start_file is None:
            raise ValueError("Warm initialization requires warm_start_file")
        if self.step_method not in STEP_METHODS:
            raise ValueError(f"Unknown step method '{self.step_method}'. "
                             f"Available: {', '.join(STEP_METHODS)}")

    def replace(self, **changes) -> 'InversionConfig':
        """Copy with some fields changed."""
        return replace(self, **changes)


@dataclass
class OutputConfig:
    """Configuration for results and figures."""
    save_figures: bool = True
    figure_dir: str = "results"
    figure_name: str = "lobel97fig.png"
    dpi: int = 150
    result_file: Optional[str] = "lobel96.npz"


@dataclass
class Config:
    """Master configuration container."""
    inversion: InversionConfig = field(default_factory=InversionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'inversion': asdict(self.inversion),
            'output': asdict(self.output),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Config':
        """Create from dictionary."""
        return cls(
            inversion=InversionConfig(**d.get('inversion', {})),
            output=OutputConfig(**d.get('output', {})),
        )

    def save(self, path: str):
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        print(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            d = json.load(f)
        print(f"Configuration loaded from {path}")
        return cls.from_dict(d)


def create_default_config(path: str = "config.json") -> Config:
    """Create and save default configuration file."""
    config = Config()
    config.save(path)
    return config


def get_config(path: Optional[str] = None) -> Config:
    """
    Get configuration, loading from file if provided.

    Parameters
    ----------
    path : str, optional
        Path to config file. If None, returns default config.

    Returns
    -------
    config : Config
    """
    if path is None:
        return Config()

    path = Path(path)
    if path.exists():
        return Config.load(str(path))
    else:
        print(f"Config file {path} not found, using defaults")
        return Config()


# Pre-defined configuration templates
TEMPLATES = {
    'default': Config(),

    'fast': Config(
        inversion=InversionConfig(maxit=20),
    ),

    'background': Config(
        inversion=InversionConfig(initialization='background'),
    ),

    'golden': Config(
        inversion=InversionConfig(step_method='golden'),
    ),

    'robust': Config(
        inversion=InversionConfig(fallback_to_golden=True),
    ),

    'unregularized': Config(
        inversion=InversionConfig(lambda_r=0.0, lambda_i=0.0),
    ),
}


def get_template(name: str) -> Config:
    """Get a pre-defined configuration template."""
    if name not in TEMPLATES:
        available = ', '.join(TEMPLATES.keys())
        raise ValueError(f"Unknown template '{name}'. Available: {available}")
    return TEMPLATES[name]
