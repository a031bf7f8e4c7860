"""Helpers to format pipeline outputs for clients."""
from typing import Dict, Optional, Sequence


def format_grids_for_client(grids: Sequence, category: str) -> Dict:
    """Ensure garment grids are JSON-serializable and summarise them."""
    return {
        "category": category,
        "count": len(grids),
        "grids": [grid.to_dict() for grid in grids],
    }


def format_measurement_for_client(record, unit: str = "cm") -> Optional[Dict]:
    """Measurement record in centimetres, or in inches when ``unit`` is ``"in"``."""
    if record is None:
        return None
    if unit == "in":
        return record.to_inches()
    if unit != "cm":
        raise ValueError(f"Unknown unit: {unit!r}")
    return record.to_dict()
