import arviz as az
import joblib
from pathlib import Path


def save_model(idata, file_path, overwrite: bool = True):
    """Save ArviZ InferenceData to NetCDF."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if file_path.exists() and not overwrite:
        raise FileExistsError(f"{file_path} exists and overwrite=False")
    idata.to_netcdf(str(file_path), engine="h5netcdf")
    print(f"✔︎ saved model → {file_path}")
    return file_path

def load_model(file_path):
    """Load ArviZ InferenceData from NetCDF."""
    idata = az.from_netcdf(str(file_path), engine="h5netcdf")
    print(f"✔︎ loaded model ← {file_path}")
    return idata

def save_preprocessor(transformer, file_path):
    """Save the scikit-learn transformer to a joblib file."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(transformer, file_path)
    print(f"✔︎ saved preprocessor → {file_path}")
    return file_path

def load_preprocessor(file_path):
    """Load the scikit-learn transformer from a joblib file."""
    transformer = joblib.load(file_path)
    print(f"✔︎ loaded preprocessor ← {file_path}")
    return transformer
