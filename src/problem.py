"""
Scattering Problem Definition
=============================

Container for the fixed inputs of a 2D TMz microwave inverse scattering run:

    es : (M, L) measured scattered field at M sensors for L sources [V/m]
    ei : (N, L) incident field on the N cells of the investigation domain [V/m]
    gd : (N, N) Green matrix between the cells of the domain
    gs : (M, N) Green matrix from the cells to the sensors

plus the mesh (I x J cells of size dx x dy) and the background medium.

Cells are numbered column-major on the I x J grid, so a cell vector maps to a
grid with ``reshape((I, J), order='F')``.

The contrast of a cell is

    tau = (eps_r - j sigma/(omega eps0 eps_rb)) - (eps_rb - j sigma_b/(omega eps0 eps_rb))
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

from .exceptions import InputDimensionError

EPS0 = 8.85418782e-12      # Vacuum permittivity [F/m]
MU0 = 4e-7 * np.pi         # Vacuum permeability [H/m]


@dataclass
class BackgroundMedium:
    """Homogeneous background in which the domain is embedded."""
    epsrb: float = 1.0
    sigb: float = 0.0
    frequency: float = 800e6

    @property
    def omega(self) -> float:
        return 2 * np.pi * self.frequency

    @property
    def wavenumber(self) -> float:
        """Wavenumber of the background [1/m]."""
        return self.omega * np.sqrt(MU0 * self.epsrb * EPS0)

    @property
    def wavelength(self) -> float:
        """Wavelength of the background [m]."""
        return 2 * np.pi / self.wavenumber


@dataclass
class ScatteringProblem:
    """
    Fixed inputs of an inversion.

    Parameters
    ----------
    es : array, shape (M, L)
        Measured scattered field
    ei : array, shape (N, L)
        Incident field
    gd : array, shape (N, N)
        Domain Green matrix
    gs : array, shape (M, N)
        Sensor Green matrix
    dx, dy : float
        Cell sizes [m]
    I, J : int
        Number of cells along x and y (I*J = N)
    background : BackgroundMedium
        Background relative permittivity, conductivity and frequency
    epsr, sig : array, shape (I, J), optional
        Ground-truth relative permittivity and conductivity. Only needed for
        the exact initialization and for error metrics.

    Raises
    ------
    InputDimensionError
        If the shapes of the inputs are not mutually consistent.
    """
    es: np.ndarray
    ei: np.ndarray
    gd: np.ndarray
    gs: np.ndarray
    dx: float
    dy: float
    I: int
    J: int
    background: BackgroundMedium
    epsr: Optional[np.ndarray] = None
    sig: Optional[np.ndarray] = None

    def __post_init__(self):
        self.es = _as_field_matrix(self.es, 'es')
        self.ei = _as_field_matrix(self.ei, 'ei')
        self.gd = np.asarray(self.gd, dtype=complex)
        self.gs = np.asarray(self.gs, dtype=complex)
        if self.gs.ndim == 1:
            self.gs = self.gs.reshape(1, -1)
        self.I = int(self.I)
        self.J = int(self.J)
        if self.epsr is not None:
            self.epsr = np.asarray(self.epsr, dtype=float).reshape((self.I, self.J), order='F')
        if self.sig is not None:
            self.sig = np.asarray(self.sig, dtype=float).reshape((self.I, self.J), order='F')
        self.validate()

    def validate(self):
        """Check that M, N and L agree across es, ei, gd and gs."""
        M, L = self.es.shape
        N, L_ei = self.ei.shape

        if L_ei != L:
            raise InputDimensionError(
                f"es has {L} sources but ei has {L_ei}")
        if self.gd.ndim != 2 or self.gd.shape != (N, N):
            raise InputDimensionError(
                f"gd must be ({N}, {N}), got {self.gd.shape}")
        if self.gs.ndim != 2 or self.gs.shape != (M, N):
            raise InputDimensionError(
                f"gs must be ({M}, {N}), got {self.gs.shape}")
        if self.I * self.J != N:
            raise InputDimensionError(
                f"Grid {self.I}x{self.J} does not match N = {N} cells")
        if self.dx <= 0 or self.dy <= 0:
            raise InputDimensionError(
                f"Cell sizes must be positive, got dx={self.dx}, dy={self.dy}")
        if self.background.frequency <= 0:
            raise InputDimensionError(
                f"Frequency must be positive, got {self.background.frequency}")

    @property
    def M(self) -> int:
        return self.es.shape[0]

    @property
    def N(self) -> int:
        return self.ei.shape[0]

    @property
    def L(self) -> int:
        return self.es.shape[1]

    @property
    def dS(self) -> float:
        """Surface element of a cell [m^2]."""
        return self.dx * self.dy

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.I, self.J)

    @property
    def has_ground_truth(self) -> bool:
        return self.epsr is not None and self.sig is not None

    def to_grid(self, values: np.ndarray) -> np.ndarray:
        """Map a cell vector (N,) onto the (I, J) grid."""
        return np.reshape(values, (self.I, self.J), order='F')

    def from_grid(self, grid: np.ndarray) -> np.ndarray:
        """Flatten an (I, J) grid into a cell vector (N,)."""
        return np.reshape(grid, -1, order='F')

    def contrast_from_properties(self, epsr: np.ndarray, sig: np.ndarray) -> np.ndarray:
        """Contrast vector of a relative permittivity / conductivity map."""
        return contrast_from_properties(epsr, sig, self.background).reshape(-1, order='F')

    def properties_from_contrast(self, contrast: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Relative permittivity and conductivity grids of a contrast vector."""
        return properties_from_contrast(self.to_grid(contrast), self.background)

    def true_contrast(self) -> np.ndarray:
        """Contrast vector of the ground truth carried by the problem."""
        if not self.has_ground_truth:
            raise ValueError("Problem carries no ground-truth epsr/sig")
        return self.contrast_from_properties(self.epsr, self.sig)

    def summary(self) -> str:
        bg = self.background
        return (f"{self.M} sensors, {self.L} sources, {self.N} cells "
                f"({self.I}x{self.J}, dx={self.dx:.2e} m, dy={self.dy:.2e} m), "
                f"eps_rb={bg.epsrb}, sig_b={bg.sigb} S/m, f={bg.frequency:.3e} Hz")


def _as_field_matrix(field: np.ndarray, name: str) -> np.ndarray:
    field = np.asarray(field, dtype=complex)
    if field.ndim == 1:
        field = field.reshape(-1, 1)
    if field.ndim != 2:
        raise InputDimensionError(f"{name} must be a 2D array, got shape {field.shape}")
    return field


def contrast_from_properties(epsr, sig, background: BackgroundMedium) -> np.ndarray:
    """
    Complex contrast of relative permittivity / conductivity values.

    Parameters
    ----------
    epsr : array
        Relative permittivity
    sig : array
        Conductivity [S/m]
    background : BackgroundMedium

    Returns
    -------
    tau : complex array, same shape as epsr
    """
    scale = background.omega * EPS0 * background.epsrb
    epsr = np.asarray(epsr, dtype=float)
    sig = np.asarray(sig, dtype=float)
    return (epsr - 1j * sig / scale) - (background.epsrb - 1j * background.sigb / scale)


def properties_from_contrast(tau, background: BackgroundMedium) -> Tuple[np.ndarray, np.ndarray]:
    """
    Inverse of ``contrast_from_properties``: returns (epsr, sig).

        epsr = Re(tau) + eps_rb
        sig  = -omega eps0 eps_rb Im(tau) + sig_b

    The MATLAB post-processing uses sig = -omega eps0 eps_rb Im(tau), which
    omits sig_b; both agree for a lossless background. Adding sig_b makes
    this the exact inverse of ``contrast_from_properties``, so a background
    cell maps back to sig_b.
    """
    tau = np.asarray(tau)
    epsr = np.real(tau) + background.epsrb
    sig = -background.omega * EPS0 * background.epsrb * np.imag(tau) + background.sigb
    return epsr, sig
