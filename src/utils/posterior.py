# src/utils/posterior.py
import json, pathlib
import numpy as np
import pandas as pd
import arviz as az


def posterior_to_frame(idata: az.InferenceData) -> pd.DataFrame:
    """
    Subject‑level summary of the random intercepts (u0) and slopes (u1):
    posterior mean, SD and 2.5 / 50 / 97.5 percentiles.
    """
    post = idata.posterior
    frames = []
    for var in ("u0", "u1"):
        u = post[var]                                        # (chain,draw,subject)
        values = u.values
        frames.append(pd.DataFrame({
            f"{var}_mean"  : u.mean(("chain", "draw")).values,
            f"{var}_sd"    : u.std(("chain", "draw")).values,
            f"{var}_q2.5"  : np.percentile(values,  2.5, axis=(0, 1)),
            f"{var}_q50"   : np.percentile(values, 50.0, axis=(0, 1)),
            f"{var}_q97.5" : np.percentile(values, 97.5, axis=(0, 1)),
        }))
    df = pd.concat(frames, axis=1)
    df.insert(0, "Subject", post["u0"].coords["subject"].values)
    return df


def global_effects(idata: az.InferenceData, json_path=None) -> dict:
    """
    Posterior means of the population parameters, optionally written to JSON.
    """
    post = idata.posterior
    terms = [str(t) for t in post["beta"].coords["term"].values]
    beta = post["beta"].mean(("chain", "draw")).values.tolist()

    effects = dict(
        alpha=post["alpha"].mean().item(),
        beta=dict(zip(terms, beta)),
        sigma_u0=post["sigma_u0"].mean().item(),
        sigma_u1=post["sigma_u1"].mean().item(),
        sigma_e=post["sigma_e"].mean().item(),
    )

    if json_path is not None:
        json_path = pathlib.Path(json_path)
        json_path.parent.mkdir(parents=True, exist_ok=True)
        json_path.write_text(json.dumps(effects, indent=2))
        print(f"✔︎ wrote global effects → {json_path}")

    return effects
