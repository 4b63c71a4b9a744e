"""
Loading and Saving of Inversion Inputs and Results
==================================================

Inputs follow the MATLAB layout of the measurement pipeline, one file per
quantity in a directory:

    es.mat    es   (M, L) measured scattered field
    ei.mat    ei   (N, L) or (I, J, L) incident field
    gd.mat    gd   (N, N) domain Green matrix
    gs.mat    gs   (M, N) sensor Green matrix
    data.mat  data struct with dx, dy, epsr, sig, epsrb, sigb, f, I, J

The same problem can also be stored in a single ``.npz`` archive.

Results are written as ``.npz`` (numpy) or ``.mat`` (scipy.io) with the
contrast C, the last gradient g and direction d, the convergence log cnvg
and the processing time, so a saved result can be used as a warm start.

MATLAB v7.3 (HDF5) files are not supported by scipy.io.
"""

import numpy as np
from pathlib import Path
from scipy.io import loadmat, savemat
from typing import Any, Dict, Union

from .inverse_solver import InversionResult, WarmStart
from .problem import BackgroundMedium, ScatteringProblem

PathLike = Union[str, Path]


def _load_variable(path: Path, name: str) -> np.ndarray:
    contents = loadmat(str(path), squeeze_me=True, struct_as_record=False)
    if name not in contents:
        raise KeyError(f"Variable '{name}' not found in {path}")
    return contents[name]


def _field(struct, name: str, default=None):
    if hasattr(struct, name):
        return getattr(struct, name)
    if default is not None:
        return default
    raise KeyError(f"Field '{name}' missing from data struct")


def load_problem(directory: PathLike) -> ScatteringProblem:
    """
    Load a scattering problem from a directory of ``.mat`` files.

    Parameters
    ----------
    directory : str or Path
        Directory containing es.mat, ei.mat, gd.mat, gs.mat and data.mat

    Returns
    -------
    problem : ScatteringProblem
    """
    directory = Path(directory)
    es = _load_variable(directory / 'es.mat', 'es')
    ei = _load_variable(directory / 'ei.mat', 'ei')
    gd = _load_variable(directory / 'gd.mat', 'gd')
    gs = _load_variable(directory / 'gs.mat', 'gs')
    data = _load_variable(directory / 'data.mat', 'data')

    I = int(_field(data, 'I'))
    J = int(_field(data, 'J'))
    ei = np.asarray(ei)
    if ei.ndim == 3:
        ei = ei.reshape((I * J, ei.shape[2]), order='F')

    background = BackgroundMedium(
        epsrb=float(_field(data, 'epsrb')),
        sigb=float(_field(data, 'sigb', 0.0)),
        frequency=float(_field(data, 'f')),
    )
    epsr = getattr(data, 'epsr', None)
    sig = getattr(data, 'sig', None)

    return ScatteringProblem(
        es=es, ei=ei, gd=gd, gs=gs,
        dx=float(_field(data, 'dx')), dy=float(_field(data, 'dy')),
        I=I, J=J, background=background,
        epsr=None if epsr is None else np.asarray(epsr, dtype=float),
        sig=None if sig is None else np.asarray(sig, dtype=float),
    )


def save_problem(problem: ScatteringProblem, directory: PathLike):
    """Write a problem in the ``.mat`` directory layout read by ``load_problem``."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    savemat(str(directory / 'es.mat'), {'es': problem.es})
    savemat(str(directory / 'ei.mat'), {'ei': problem.ei})
    savemat(str(directory / 'gd.mat'), {'gd': problem.gd})
    savemat(str(directory / 'gs.mat'), {'gs': problem.gs})

    bg = problem.background
    data = {
        'dx': problem.dx, 'dy': problem.dy,
        'I': problem.I, 'J': problem.J,
        'epsrb': bg.epsrb, 'sigb': bg.sigb, 'f': bg.frequency,
        'lambda': bg.wavelength, 'kb': bg.wavenumber,
    }
    if problem.has_ground_truth:
        data['epsr'] = problem.epsr
        data['sig'] = problem.sig
    savemat(str(directory / 'data.mat'), {'data': data})


def save_problem_npz(problem: ScatteringProblem, path: PathLike):
    """Store a problem in a single ``.npz`` archive."""
    bg = problem.background
    arrays = dict(es=problem.es, ei=problem.ei, gd=problem.gd, gs=problem.gs,
                  dx=problem.dx, dy=problem.dy, I=problem.I, J=problem.J,
                  epsrb=bg.epsrb, sigb=bg.sigb, f=bg.frequency)
    if problem.has_ground_truth:
        arrays.update(epsr=problem.epsr, sig=problem.sig)
    np.savez(path, **arrays)


def load_problem_npz(path: PathLike) -> ScatteringProblem:
    """Load a problem written by ``save_problem_npz``."""
    with np.load(path) as d:
        return ScatteringProblem(
            es=d['es'], ei=d['ei'], gd=d['gd'], gs=d['gs'],
            dx=float(d['dx']), dy=float(d['dy']),
            I=int(d['I']), J=int(d['J']),
            background=BackgroundMedium(epsrb=float(d['epsrb']), sigb=float(d['sigb']),
                                        frequency=float(d['f'])),
            epsr=d['epsr'] if 'epsr' in d.files else None,
            sig=d['sig'] if 'sig' in d.files else None,
        )


def _result_arrays(result: InversionResult) -> Dict[str, Any]:
    return {
        'C': result.contrast,
        'g': result.gradient,
        'd': result.direction,
        'cnvg': result.convergence,
        'totaltime': result.total_time,
        'epsr': result.epsr,
        'sig': result.sig,
    }


def save_result(result: InversionResult, path: PathLike) -> str:
    """
    Save a result to ``.npz`` or ``.mat`` (chosen by the file suffix).

    Returns
    -------
    path : str
        The written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == '.mat':
        savemat(str(path), _result_arrays(result))
    else:
        if path.suffix != '.npz':
            path = path.with_suffix('.npz')
        np.savez(path, **_result_arrays(result))
    return str(path)


def load_result(path: PathLike) -> Dict[str, np.ndarray]:
    """Arrays of a saved result, keyed C, g, d, cnvg, totaltime, epsr, sig."""
    path = Path(path)
    if path.suffix == '.mat':
        contents = loadmat(str(path))
        return {k: v for k, v in contents.items() if not k.startswith('__')}
    with np.load(path) as d:
        return {k: d[k] for k in d.files}


def load_warm_start(path: PathLike) -> WarmStart:
    """Warm-start strategy from a saved result."""
    arrays = load_result(path)
    return WarmStart(contrast=np.ravel(arrays['C']),
                     gradient=np.ravel(arrays['g']),
                     direction=np.ravel(arrays['d']))
