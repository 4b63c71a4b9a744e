#!/usr/bin/env python
"""
Command-Line Interface for Conjugate-Gradient Inversion
=======================================================

Usage:
    python -m cg_inversion.cli --help
    python -m cg_inversion.cli solve --data-dir measurements/ --maxit 150
    python -m cg_inversion.cli demo --maxit 30
    python -m cg_inversion.cli config --template default --output config.json
"""

import argparse
import sys
from pathlib import Path


def setup_parser() -> argparse.ArgumentParser:
    """Set up command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog='cg_inversion',
        description='Conjugate-Gradient Microwave Inverse Scattering',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Invert measured data (es.mat, ei.mat, gd.mat, gs.mat, data.mat)
  python -m cg_inversion.cli solve --data-dir measurements/ --output lobel96.npz

  # Run a synthetic demonstration
  python -m cg_inversion.cli demo --maxit 30

  # Create config file
  python -m cg_inversion.cli config --template default --output config.json
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Solve command
    solve_parser = subparsers.add_parser('solve', help='Invert measured data')
    solve_parser.add_argument('--data-dir', type=str, default=None,
                              help='Directory with es.mat, ei.mat, gd.mat, gs.mat, data.mat')
    solve_parser.add_argument('--problem', type=str, default=None,
                              help='Problem stored as a single .npz archive')
    solve_parser.add_argument('--config', type=str, default=None,
                              help='Path to config file')
    solve_parser.add_argument('--maxit', type=int, default=None,
                              help='Number of iterations (overrides config)')
    solve_parser.add_argument('--init', choices=['background', 'backpropagation', 'exact', 'warm'],
                              default=None, help='Initial solution (overrides config)')
    solve_parser.add_argument('--warm-start', type=str, default=None,
                              help='Result file to continue from (implies --init warm)')
    solve_parser.add_argument('--step', choices=['closed_form', 'golden'], default=None,
                              help='Step-length strategy (overrides config)')
    solve_parser.add_argument('--output', type=str, default=None,
                              help='Output file for results (.npz or .mat)')
    solve_parser.add_argument('--plot', action='store_true',
                              help='Show plots')
    solve_parser.add_argument('--quiet', action='store_true',
                              help='Do not print iterations')

    # Demo command
    demo_parser = subparsers.add_parser('demo', help='Run synthetic demonstration')
    demo_parser.add_argument('--size', type=int, default=12,
                             help='Cells per side of the investigation domain')
    demo_parser.add_argument('--maxit', type=int, default=30,
                             help='Number of iterations')
    demo_parser.add_argument('--noise', type=float, default=0.0,
                             help='Relative noise level of the synthetic data')
    demo_parser.add_argument('--output-dir', type=str, default='results',
                             help='Output directory for figures')
    demo_parser.add_argument('--plot', action='store_true',
                             help='Show plots')

    # Config command
    config_parser = subparsers.add_parser('config', help='Configuration management')
    config_parser.add_argument('--template', type=str, default='default',
                               help='Template name')
    config_parser.add_argument('--output', type=str, default='config.json',
                               help='Output config file')
    config_parser.add_argument('--list-templates', action='store_true',
                               help='List available templates')

    # Info command
    subparsers.add_parser('info', help='Package information')

    return parser


def _inversion_config(args):
    from .config import Config, get_config

    config = get_config(args.config) if args.config else Config()
    changes = {}
    if args.maxit is not None:
        changes['maxit'] = args.maxit
    if args.init is not None:
        changes['initialization'] = args.init
    if args.warm_start is not None:
        changes['initialization'] = 'warm'
        changes['warm_start_file'] = args.warm_start
    if args.step is not None:
        changes['step_method'] = args.step
    if changes:
        config.inversion = config.inversion.replace(**changes)
    return config


def run_solve(args):
    """Invert measured data."""
    from .data_io import load_problem, load_problem_npz, save_result
    from .inverse_solver import ConjugateGradientSolver

    if (args.data_dir is None) == (args.problem is None):
        print("Give exactly one of --data-dir or --problem")
        sys.exit(2)

    config = _inversion_config(args)
    problem = load_problem(args.data_dir) if args.data_dir else load_problem_npz(args.problem)

    solver = ConjugateGradientSolver(problem, config.inversion, verbose=not args.quiet)
    result = solver.solve()

    output = args.output or config.output.result_file
    if output:
        path = save_result(result, output)
        print(f"\nResults saved to {path}")

    if problem.has_ground_truth:
        from .utils import compute_reconstruction_error
        metrics = compute_reconstruction_error(result, problem)
        print("\nMetrics:")
        print(f"  Permittivity RMSE: {metrics['epsr_rmse']:.4f}")
        print(f"  Conductivity RMSE: {metrics['sig_rmse']:.4e} S/m")

    if args.plot or config.output.save_figures:
        from .utils import plot_results
        import matplotlib.pyplot as plt

        fig = plot_results(result, problem)
        if config.output.save_figures:
            output_dir = Path(config.output.figure_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            fig.savefig(output_dir / config.output.figure_name,
                        dpi=config.output.dpi, bbox_inches='tight')
            print(f"Saved: {output_dir / config.output.figure_name}")
        if args.plot:
            plt.show()


def run_demo(args):
    """Run demonstration on a synthetic cylinder."""
    from .inverse_solver import ConjugateGradientSolver
    from .problem import BackgroundMedium
    from .synthetic import cylinder_phantom, make_synthetic_problem
    from .utils import compute_reconstruction_error, plot_results
    import matplotlib.pyplot as plt

    output_dir = Path(args.output_dir)
    output_dir.mkdir(exist_ok=True)

    print("\n" + "="*60)
    print("CONJUGATE GRADIENT DEMONSTRATION (DIELECTRIC CYLINDER)")
    print("="*60)

    dx = dy = 5e-3
    background = BackgroundMedium(epsrb=1.0, sigb=0.0, frequency=800e6)
    epsr, sig = cylinder_phantom(args.size, args.size, dx, dy,
                                 radius=args.size * dx / 4, epsr=1.5, sig=0.01,
                                 background=background)
    problem = make_synthetic_problem(epsr, sig, dx=dx, dy=dy, background=background,
                                     n_sensors=16, n_sources=8, noise_level=args.noise)

    solver = ConjugateGradientSolver(problem, maxit=args.maxit, lambda_r=0.0, lambda_i=0.0)
    result = solver.solve()

    metrics = compute_reconstruction_error(result, problem)
    print(f"\nRelative contrast error: {metrics['contrast_relative_error']:.3f}")
    print(f"Permittivity RMSE: {metrics['epsr_rmse']:.4f}")

    fig = plot_results(result, problem)
    fig.savefig(output_dir / 'cg_demo.png', dpi=150, bbox_inches='tight')
    print(f"\nSaved: {output_dir / 'cg_demo.png'}")

    if args.plot:
        plt.show()

    print("\nDemo complete!")


def run_config(args):
    """Handle config commands."""
    from .config import TEMPLATES, get_template

    if args.list_templates:
        print("Available templates:")
        for name in TEMPLATES.keys():
            print(f"  - {name}")
        return

    config = get_template(args.template)
    config.save(args.output)


def run_info(args):
    """Show package information."""
    print("""
Conjugate-Gradient Microwave Inverse Scattering
===============================================

Method:
  - Regularized conjugate gradient (Lobel et al., 1996/1997)
  - Complex Polak-Ribière directions
  - Closed-form complex step length, golden-section alternative

Regularization:
  - Edge-preserving potentials: Geman-McClure, Hebert-Leahy, Green, quadratic

Initial solutions:
  - background, backpropagation, exact (verification), warm start

Inputs:
  - es.mat, ei.mat, gd.mat, gs.mat, data.mat, or a single .npz archive
    """)


def main(argv=None):
    """Main entry point."""
    parser = setup_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    if args.command == 'solve':
        run_solve(args)
    elif args.command == 'demo':
        run_demo(args)
    elif args.command == 'config':
        run_config(args)
    elif args.command == 'info':
        run_info(args)


if __name__ == "__main__":
    main()
