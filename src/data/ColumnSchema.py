"""
Column schema helper for the mood-trial project.

Centralises every simulated and derived column name in one place and exposes
 type‑safe accessors so downstream code never hard‑codes strings.

Usage
-----
>>> from src.data.ColumnSchema import _ColumnSchema
>>> cols = _ColumnSchema()
>>> cols.group()
'Subject'
>>> cols.target()
'Mood'
"""

from typing import List, Dict
import json

class _ColumnSchema:
    """Container for canonical column lists.

    Keeping everything behind methods avoids accidental mutation and lets
    IDEs offer autocompletion (because the return type is always `List[str]`).
    """

    _GROUP_COL: str = "Subject"

    _TIME_COL: str = "Time"

    _TREATMENT_COL: str = "Drug"     # 1 = drug, 0 = placebo

    _SCALED_TIME_COL: str = "Time_scaled"

    _TARGET_COL: str = "Mood"

    # ────────────────────────────────────────────────────────────────────
    # Public helpers
    # ────────────────────────────────────────────────────────────────────
    def group(self) -> str:
        return self._GROUP_COL

    def time(self) -> str:
        return self._TIME_COL

    def treatment(self) -> str:
        return self._TREATMENT_COL

    def scaled_time(self) -> str:
        return self._SCALED_TIME_COL

    def target(self) -> str:
        return self._TARGET_COL

    # ------------------------------------------------------------------
    def raw(self) -> List[str]:
        """Columns produced by the simulator, in output order."""
        return [self._GROUP_COL, self._TIME_COL, self._TREATMENT_COL, self._TARGET_COL]

    def model_features(self) -> List[str]:
        """Covariates the mixed models see *after* preprocessing."""
        return [self._SCALED_TIME_COL, self._TREATMENT_COL]

    def as_dict(self) -> Dict[str, List[str]]:
        """Dictionary form – handy for YAML/JSON dumps."""
        return {
            "group": [self.group()],
            "time": [self.time()],
            "treatment": [self.treatment()],
            "scaled": [self.scaled_time()],
            "target": [self.target()],
        }


if __name__ == "__main__":
    cols = _ColumnSchema()

    print("Group column:       ", cols.group())
    print("Time column:        ", cols.time())
    print("Treatment column:   ", cols.treatment())
    print("Target column:      ", cols.target())
    print("Model features:     ", cols.model_features())
    print("\nAs dict (JSON):")
    print(json.dumps(cols.as_dict(), indent=2))
