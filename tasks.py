# tasks.py: Task definitions using Invoke (install with `pip install invoke`)
from invoke import task

@task
def analysis(c, seed=42, subjects=150, timepoints=6, out_dir="reports", reml=False, bayes=False):
    """Simulate the trial, fit model1-3, compare them and write figures."""
    flags = " ".join(f for f, on in (("--reml", reml), ("--bayes", bayes)) if on)
    c.run(f"python3 -m src.run_analysis --seed {seed} --subjects {subjects} "
          f"--timepoints {timepoints} --out-dir {out_dir} {flags}")

@task
def simulate(c, seed=42, out="data/mood_trial.csv"):
    """Write one simulated trial to CSV."""
    c.run("python3 - << 'EOF'\n"
          "from src.data.simulate import simulate_trial, make_rng\n"
          "from src.data.load_data import save_data\n"
          f"save_data(simulate_trial(rng=make_rng({seed})), '{out}')\n"
          "EOF")

@task
def jupyter(c, port=8888):
    """Launch JupyterLab on given port."""
    c.run(f"jupyter lab --ip=0.0.0.0 --port={port} --no-browser --allow-root")

@task
def lint(c):
    """Run code linting."""
    c.run("flake8 src/")

@task
def test(c, slow=False):
    """Run tests (``--slow`` includes the PyMC sampling tests)."""
    c.run("pytest" if slow else "pytest -m 'not slow'")

@task
def clean(c):
    """Clean up temporary files."""
    c.run("find . -type d -name __pycache__ -exec rm -rf {} +")
    c.run("find . -type f -name '*.pyc' -delete")
    c.run("find . -type f -name '*.pyo' -delete")
    c.run("find . -type f -name '.coverage' -delete")
    c.run("rm -rf .pytest_cache")
    c.run("rm -rf htmlcov")
    c.run("rm -rf dist")
    c.run("rm -rf build")
    c.run("rm -rf reports")
