"""Display helpers for the venue list and map popups."""
from typing import Optional


def format_distance(km: float) -> str:
    """Metres below one kilometre, otherwise kilometres with two decimals."""
    if km < 1:
        return f"{km * 1000:.0f} m"
    return f"{km:.2f} km"


def open_status_label(open_now: Optional[bool]) -> str:
    if open_now is True:
        return "Open Now"
    if open_now is False:
        return "Closed"
    return "Unknown"
