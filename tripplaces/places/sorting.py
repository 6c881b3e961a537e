"""Client-side ordering of search results."""

from typing import Iterable, List, Optional

from tripplaces.places.models import LatLng, PlaceRecord, haversine_meters

SORT_OPTIONS = ("recommended", "rating", "distance")


def sort_places(records: Iterable[PlaceRecord], sort_by: str = "recommended", center: Optional[LatLng] = None) -> List[PlaceRecord]:
    """Order results; ``recommended`` keeps the provider ranking."""
    records = list(records)
    if sort_by == "rating":
        return sorted(records, key=lambda r: (-(r.rating or 0), -(r.rating_count or 0)))
    if sort_by == "distance":
        if center is None:
            raise ValueError("distance sort requires a center")
        return sorted(records, key=lambda r: haversine_meters(center, r.location))
    if sort_by != "recommended":
        raise ValueError(f"sort must be one of {', '.join(SORT_OPTIONS)}")
    return records
