"""
Synthetic Scattering Problems
=============================

Builds Green matrices, incident fields and measured data for a square-cell
discretization of a 2D TMz problem, so that the inversion can be exercised
without an external field solver.

Green matrices (Richmond's method)
----------------------------------
Each square cell is replaced by a circle of equal area, radius
a = sqrt(dx·dy/π). With e^{jωt} time convention and kb the background
wavenumber:

    off-diagonal  g_mn = -(jπ kb a / 2) J1(kb a) H0⁽²⁾(kb ρ_mn)
    diagonal      g_nn = -(j/2) [π kb a H1⁽²⁾(kb a) - 2j]

gs uses the off-diagonal expression with ρ measured from the cells to the
sensors. The incident fields are unit plane waves.

Reference: Richmond, J. "Scattering by a dielectric cylinder of arbitrary
cross section shape." IEEE Trans. Antennas Propag. 13.3 (1965).
"""

import numpy as np
from scipy.special import hankel2, jv
from typing import Tuple

from .forward_solver import generate_synthetic_data
from .problem import EPS0, MU0, BackgroundMedium, ScatteringProblem


def complex_wavenumber(background: BackgroundMedium) -> complex:
    """Wavenumber of a (possibly lossy) background."""
    omega = background.omega
    eps_c = EPS0 * background.epsrb - 1j * background.sigb / omega
    return omega * np.sqrt(MU0 * eps_c + 0j)


def cell_centers(I: int, J: int, dx: float, dy: float) -> np.ndarray:
    """
    Cell centers of an I x J grid centered at the origin, in cell order.

    Returns
    -------
    centers : array, shape (I*J, 2)
    """
    x = (np.arange(I) - (I - 1) / 2) * dx
    y = (np.arange(J) - (J - 1) / 2) * dy
    X, Y = np.meshgrid(x, y, indexing='ij')
    return np.column_stack([X.ravel(order='F'), Y.ravel(order='F')])


def circular_array(n_points: int, radius: float) -> np.ndarray:
    """Evenly spaced points on a circle, shape (n_points, 2)."""
    theta = np.linspace(0, 2*np.pi, n_points, endpoint=False)
    return radius * np.column_stack([np.cos(theta), np.sin(theta)])


def green_matrices(centers: np.ndarray, sensors: np.ndarray, dS: float,
                   kb: complex) -> Tuple[np.ndarray, np.ndarray]:
    """
    Domain and sensor Green matrices by Richmond's method.

    Parameters
    ----------
    centers : array, shape (N, 2)
        Cell centers
    sensors : array, shape (M, 2)
        Sensor positions (outside the domain)
    dS : float
        Cell area
    kb : complex
        Background wavenumber

    Returns
    -------
    gd : array, shape (N, N)
    gs : array, shape (M, N)
    """
    a = np.sqrt(dS / np.pi)
    coupling = -1j * np.pi * kb * a / 2 * jv(1, kb * a)

    rho_d = np.linalg.norm(centers[:, np.newaxis, :] - centers[np.newaxis, :, :], axis=2)
    off_diag = ~np.eye(len(centers), dtype=bool)
    gd = np.zeros(rho_d.shape, dtype=complex)
    gd[off_diag] = coupling * hankel2(0, kb * rho_d[off_diag])
    np.fill_diagonal(gd, -0.5j * (np.pi * kb * a * hankel2(1, kb * a) - 2j))

    rho_s = np.linalg.norm(sensors[:, np.newaxis, :] - centers[np.newaxis, :, :], axis=2)
    gs = coupling * hankel2(0, kb * rho_s)
    return gd, gs


def plane_wave_incident_field(centers: np.ndarray, n_sources: int, kb: complex) -> np.ndarray:
    """
    Unit plane waves from n_sources evenly spaced directions.

    Returns
    -------
    ei : array, shape (N, n_sources)
    """
    theta = np.linspace(0, 2*np.pi, n_sources, endpoint=False)
    k_dir = np.column_stack([np.cos(theta), np.sin(theta)])
    return np.exp(-1j * kb * centers @ k_dir.T)


def cylinder_phantom(I: int, J: int, dx: float, dy: float,
                     radius: float, epsr: float, sig: float,
                     center: Tuple[float, float] = (0.0, 0.0),
                     background: BackgroundMedium = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Relative permittivity and conductivity grids of a circular cylinder.

    Returns
    -------
    epsr_map, sig_map : arrays, shape (I, J)
    """
    if background is None:
        background = BackgroundMedium()
    centers = cell_centers(I, J, dx, dy)
    inside = np.hypot(centers[:, 0] - center[0], centers[:, 1] - center[1]) <= radius
    epsr_map = np.where(inside, epsr, background.epsrb).reshape((I, J), order='F')
    sig_map = np.where(inside, sig, background.sigb).reshape((I, J), order='F')
    return epsr_map, sig_map


def make_synthetic_problem(epsr: np.ndarray, sig: np.ndarray,
                           dx: float = 5e-3, dy: float = 5e-3,
                           background: BackgroundMedium = None,
                           n_sensors: int = 16, n_sources: int = 8,
                           sensor_radius: float = None,
                           noise_level: float = 0.0, seed: int = 42) -> ScatteringProblem:
    """
    Scattering problem for known permittivity / conductivity maps.

    Parameters
    ----------
    epsr, sig : arrays, shape (I, J)
        Ground truth
    dx, dy : float
        Cell sizes [m]
    background : BackgroundMedium, optional
        Defaults to free space at 800 MHz
    n_sensors : int
        Number of sensors on a circle around the domain
    n_sources : int
        Number of plane-wave illuminations
    sensor_radius : float, optional
        Radius of the sensor circle; defaults to 1.5 times the half-diagonal
        of the domain
    noise_level : float
        Relative noise on the measured field
    seed : int
        Random seed

    Returns
    -------
    problem : ScatteringProblem
    """
    if background is None:
        background = BackgroundMedium()
    epsr = np.asarray(epsr, dtype=float)
    sig = np.asarray(sig, dtype=float)
    I, J = epsr.shape
    if sensor_radius is None:
        sensor_radius = 1.5 * np.hypot(I * dx, J * dy) / 2

    kb = complex_wavenumber(background)
    centers = cell_centers(I, J, dx, dy)
    sensors = circular_array(n_sensors, sensor_radius)
    gd, gs = green_matrices(centers, sensors, dx * dy, kb)
    ei = plane_wave_incident_field(centers, n_sources, kb)

    problem = ScatteringProblem(
        es=np.zeros((n_sensors, n_sources), dtype=complex), ei=ei, gd=gd, gs=gs,
        dx=dx, dy=dy, I=I, J=J, background=background, epsr=epsr, sig=sig,
    )
    problem.es = generate_synthetic_data(problem.true_contrast(), ei, gd, gs,
                                         noise_level=noise_level, seed=seed)
    return problem
