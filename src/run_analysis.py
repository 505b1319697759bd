#!/usr/bin/env python
"""
Simulate / fit / compare the mood-trial mixed models.

Run:
    python -m src.run_analysis --seed 42 --out-dir reports

Steps (strictly in order, any error aborts the rest):
    1. simulate the trial
    2. pulse check + standardise Time
    3. fit model1, model2, model3
    4. likelihood-ratio tests: model1 vs model2, model3 vs model2
    5. diagnostic figures for every model
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

from src.data.simulate import TrialDesign, simulate_trial, make_rng, population_mean, DEFAULT_SEED
from src.data.load_data import save_data
from src.features.eda import quick_pulse_check
from src.features.preprocess import prepare_for_mixed
from src.models.mixed import fit_all_models, interpret_fixed_effects
from src.models.compare import compare_models, information_criteria
from src.utils.model_plots import render_all
from src.utils.hierarchical_utils import save_preprocessor

logger = logging.getLogger(__name__)

COMPARISONS = [("model1", "model2"), ("model3", "model2")]


def run_pipeline(design: TrialDesign | None = None,
                 seed: int = DEFAULT_SEED,
                 out_dir: str | Path | None = "reports",
                 reml: bool = False,
                 plots: bool = True,
                 bayes: bool = False,
                 verbose: bool = True) -> dict:
    """
    Run every stage once and return the artefacts:
    ``data``, ``transformer``, ``models``, ``comparisons``, ``criteria``,
    ``interpretation``, ``figures`` (and ``idata`` plus ``bayes_metrics``
    with ``bayes=True``).
    """
    design = design or TrialDesign()
    out_dir = Path(out_dir) if out_dir is not None else None

    # 1 · simulate
    df = simulate_trial(design, make_rng(seed))
    if verbose:
        print(f"\n=== Simulated trial (seed={seed}) ===")
        quick_pulse_check(df)
        print(f"Population mean Mood under the design: {population_mean(design):.3f}")

    # 2 · preprocess
    df_model, tf = prepare_for_mixed(df)

    # 3 · fit
    models = fit_all_models(df_model, reml=reml)

    # 4 · compare (ML fits only)
    comparisons = []
    if not reml:
        comparisons = [compare_models(models[a], models[b]) for a, b in COMPARISONS]
    criteria = information_criteria(models)
    interpretation = interpret_fixed_effects(models["model2"])

    if verbose:
        for name, fm in models.items():
            print(f"\n=== {name}: {fm.spec.description} ===")
            print(fm.fixed_effects().round(4).to_string())
            print(fm.variance_components().round(4).to_string(index=False))
            if fm.diagnostics.singular:
                print("⚠️  singular fit: a random-effect variance is at its boundary")
        print("\n=== Information criteria ===")
        print(criteria.round(3).to_string(index=False))
        if comparisons:
            print("\n=== Likelihood-ratio tests ===")
            for lrt in comparisons:
                print(lrt)
        print("\n=== Interpretation (model2) ===")
        for line in interpretation:
            print(" •", line)

    # 5 · plots and artefacts
    figures = []
    if out_dir is not None:
        save_data(df_model, out_dir / "mood_trial.csv")
        save_preprocessor(tf, out_dir / "time_scaler.joblib")
        criteria.to_csv(out_dir / "information_criteria.csv", index=False)
        if plots:
            for name, fm in models.items():
                figures.extend(render_all(fm, df_model, out_dir / "figures"))
            if verbose:
                print(f"✅ wrote {len(figures)} figures → {out_dir / 'figures'}")

    results = {
        "data": df_model,
        "transformer": tf,
        "models": models,
        "comparisons": comparisons,
        "criteria": criteria,
        "interpretation": interpretation,
        "figures": figures,
    }

    if bayes:
        from src.models.hierarchical_cpu import fit_bayesian_mood
        from src.utils.bayesian_metrics import (compute_bayesian_metrics,
                                                compute_convergence_diagnostics)
        from src.utils.posterior import global_effects
        from src.utils.hierarchical_utils import save_model

        idata = fit_bayesian_mood(df_model, random_seed=seed)
        compute_convergence_diagnostics(idata)
        results["bayes_metrics"] = compute_bayesian_metrics(idata)
        effects = global_effects(
            idata, json_path=None if out_dir is None else out_dir / "bayes_global_effects.json"
        )
        if verbose:
            print("\n=== Bayesian model2 (posterior means) ===")
            print(effects)
        if out_dir is not None:
            save_model(idata, out_dir / "bayes_model2.nc")
        results["idata"] = idata

    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate a mood trial and compare mixed models")
    parser.add_argument('--seed', type=int, default=DEFAULT_SEED, help='Random seed for the simulation')
    parser.add_argument('--subjects', type=int, default=150, help='Number of subjects')
    parser.add_argument('--timepoints', type=int, default=6, help='Visits per subject')
    parser.add_argument('--intercept-sd', type=float, default=0.0,
                        help='SD of simulated per-subject intercept deviations')
    parser.add_argument('--slope-sd', type=float, default=0.0,
                        help='SD of simulated per-subject Time slope deviations')
    parser.add_argument('--allocation', choices=['bernoulli', 'balanced'], default='bernoulli',
                        help='Drug assignment scheme')
    parser.add_argument('--out-dir', type=str, default='reports', help='Where to write figures and tables')
    parser.add_argument('--reml', action='store_true', help='Fit by REML (skips likelihood-ratio tests)')
    parser.add_argument('--no-plots', action='store_true', help='Skip diagnostic figures')
    parser.add_argument('--bayes', action='store_true', help='Also fit the PyMC version of model2')
    parser.add_argument('--log-level', type=str, default='INFO', help='Logging level')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    design = TrialDesign(
        n_subjects=args.subjects,
        n_timepoints=args.timepoints,
        allocation=args.allocation,
        subject_intercept_sd=args.intercept_sd,
        subject_slope_sd=args.slope_sd,
    )
    run_pipeline(
        design,
        seed=args.seed,
        out_dir=args.out_dir,
        reml=args.reml,
        plots=not args.no_plots,
        bayes=args.bayes,
    )


if __name__ == "__main__":
    main()
