"""CLI job that runs a Places text search and prints one JSON object per place."""

import argparse
import json
import logging
import sys
import time
from typing import Optional, TextIO

from tripplaces.core.config import get_settings
from tripplaces.places.errors import PlacesApiError
from tripplaces.places.models import LatLng, TextSearchOptions
from tripplaces.places.orchestrator import PlacesOrchestrator, build_orchestrator
from tripplaces.places.sorting import SORT_OPTIONS, sort_places

logger = logging.getLogger(__name__)

NEXT_PAGE_DELAY_SECONDS = 2.5


def run_search_job(
    *,
    query: str,
    lat: Optional[float],
    lng: Optional[float],
    radius: Optional[float],
    category: Optional[str],
    open_now: bool,
    max_pages: int,
    sort_by: str = "recommended",
    out: TextIO = sys.stdout,
    orchestrator: Optional[PlacesOrchestrator] = None,
) -> int:
    query = (query or "").strip()
    if not query:
        raise ValueError("Query parameters are empty")
    if (lat is None) != (lng is None):
        raise ValueError("--lat and --lng must be given together")

    orchestrator = orchestrator or build_orchestrator()
    location = LatLng(lat, lng) if lat is not None else None
    logger.info("Running Places text search for query=%s via %s adapter", query, orchestrator.active_adapter)

    page_token = None
    processed_pages = 0
    written = 0

    while processed_pages < max_pages:
        options = TextSearchOptions(
            query=query,
            location=location,
            radius_m=radius,
            open_now=open_now,
            category=category,
            page_token=page_token,
            max_results=get_settings().max_results,
        )
        result = orchestrator.search_text(options).result()
        logger.info("Fetched %d results on page %d (request_id=%s)", len(result.items), processed_pages + 1, result.request_id)

        for place in sort_places(result.items, sort_by, location):
            out.write(json.dumps(place.to_dict(), ensure_ascii=False) + "\n")
            written += 1

        processed_pages += 1
        page_token = result.next_page_token
        if not page_token:
            break
        time.sleep(NEXT_PAGE_DELAY_SECONDS)

    logger.info("Completed run: pages_processed=%d places=%d", processed_pages, written)
    return written


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search Google Places and print JSON lines")
    parser.add_argument("--query", dest="query", required=True, help="Free-text query, e.g. 'coffee near Shibuya'")
    parser.add_argument("--lat", dest="lat", type=float, help="Latitude to bias results toward")
    parser.add_argument("--lng", dest="lng", type=float, help="Longitude to bias results toward")
    parser.add_argument("--radius", dest="radius", type=float, help="Bias radius in meters (max 50000)")
    parser.add_argument("--category", dest="category", help="Category id such as cafes or hotels")
    parser.add_argument("--open-now", dest="open_now", action="store_true", help="Only places open right now")
    parser.add_argument("--sort", dest="sort_by", choices=SORT_OPTIONS, default="recommended")
    parser.add_argument("--max-pages", dest="max_pages", type=int, default=1, help="Maximum number of result pages")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    if args.sort_by == "distance" and args.lat is None:
        parser.error("--sort distance requires --lat and --lng")

    orchestrator = build_orchestrator()
    try:
        run_search_job(
            query=args.query,
            lat=args.lat,
            lng=args.lng,
            radius=args.radius,
            category=args.category,
            open_now=args.open_now,
            max_pages=args.max_pages,
            sort_by=args.sort_by,
            orchestrator=orchestrator,
        )
    except PlacesApiError as exc:
        logger.error("Places search failed: kind=%s message=%s", exc.kind.value, exc.message)
        raise SystemExit(1) from exc
    finally:
        orchestrator.shutdown()


if __name__ == "__main__":
    main()
