import arviz as az
from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score
import numpy as np


def compute_classical_metrics(idata, y_true):
    """Compute MSE, RMSE, MAE & R² from the posterior predictive distribution."""
    # Extract posterior predictive draws and compute mean prediction
    y_ppc = (
        idata.posterior_predictive['y_obs']
        .stack(samples=('chain', 'draw'))
        .values
    )
    y_pred = y_ppc.mean(axis=1)

    # Classical regression metrics
    mse = mean_squared_error(y_true, y_pred)
    rmse = float(np.sqrt(mse))
    mae = mean_absolute_error(y_true, y_pred)
    r2 = r2_score(y_true, y_pred)

    # Print results
    print(f"▶ Classical MSE : {mse:.3f}")
    print(f"▶ Classical RMSE: {rmse:.3f}")
    print(f"▶ Classical MAE : {mae:.3f}")
    print(f"▶ Classical R²  : {r2:.3f}")

    return {'mse': mse, 'rmse': rmse, 'mae': mae, 'r2': r2}


def compute_bayesian_metrics(idata, var_name: str = "y_obs") -> dict | None:
    """
    PSIS-LOO and WAIC on the deviance scale plus the share of observations
    whose Pareto k exceeds 0.7. ``None`` when the log-likelihood was not kept.
    """
    if 'log_likelihood' not in idata.groups():
        print("⚠️ InferenceData has no log_likelihood; skipping LOO/WAIC.")
        return None

    loo = az.loo(idata, var_name=var_name, pointwise=True)
    waic = az.waic(idata, var_name=var_name)
    metrics = {
        'looic': float(-2 * loo["elpd_loo"]),
        'p_loo': float(loo["p_loo"]),
        'waic': float(-2 * waic["elpd_waic"]),
        'p_waic': float(waic["p_waic"]),
        'prop_bad_k': float(np.mean(np.asarray(loo["pareto_k"]) > 0.7)),
    }

    print(f"▶ LOOIC {metrics['looic']:.1f} (p_loo {metrics['p_loo']:.1f}) | "
          f"WAIC {metrics['waic']:.1f} (p_waic {metrics['p_waic']:.1f}) | "
          f"Pareto k>0.7: {metrics['prop_bad_k']:.2%}")
    return metrics


def compute_convergence_diagnostics(idata):
    """Print R̂ and ESS bulk/tail for the population-level parameters."""
    if 'posterior' not in idata.groups():
        print("No posterior group in InferenceData; skipping convergence diagnostics.")
        return None

    summary = az.summary(
        idata,
        var_names=["alpha", "beta", "sigma_u0", "sigma_u1", "sigma_e"],
        kind="diagnostics",
        round_to=2
    )

    print("▶ Convergence diagnostics (R̂, ESS):")
    print(summary[["r_hat", "ess_bulk", "ess_tail"]])
    return summary
