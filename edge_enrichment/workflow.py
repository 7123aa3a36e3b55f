import argparse
import logging
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from edge_enrichment.airquality.updater import AirQualityUpdater
from edge_enrichment.config import AppConfig, settings as app_settings
from edge_enrichment.exceptions import DatasetLoadError
from edge_enrichment.graph import StreetGraph
from edge_enrichment.updaters.air_quality import AirQualityGraphUpdater
from edge_enrichment.updaters.noise_level import NoiseLevelGraphUpdater
from edge_enrichment.updaters.polling import GraphUpdaterManager, PollingGraphUpdater
from edge_enrichment.utils import load_vector_data, save_vector_data, setup_output_dir


logger = logging.getLogger(__name__)


def load_street_graph(settings: AppConfig) -> StreetGraph:
    """Loads the street edges configured in ``settings.paths.street_edges_path``."""
    gdf = load_vector_data(
        settings.paths.street_edges_path, layer=settings.input_data.edge_layer
    )
    return StreetGraph.from_geodataframe(
        gdf,
        id_field=settings.input_data.edge_id_field,
        target_epsg=settings.processing.edge_crs_epsg,
    )


def save_street_graph(graph: StreetGraph, settings: AppConfig) -> Path:
    output_path = settings.output_files.get_full_path(
        "enriched_edges_gpkg", settings.paths.output_dir
    )
    save_vector_data(
        graph.to_geodataframe(),
        output_path,
        layer=settings.output_files.enriched_edges_layer,
        driver="GPKG",
    )
    return output_path


def enrich_graph(graph: StreetGraph, settings: AppConfig) -> dict:
    """
    Runs one air quality pass and one noise pass over the graph.

    Raises DatasetLoadError before any edge is touched when an air quality file
    is invalid. A failed noise fetch is logged and skipped.
    """
    results = {"air_quality_edges": 0, "noise_level_edges": None}

    if settings.paths.air_quality_files:
        updater = AirQualityUpdater(settings.paths.air_quality_files, settings=settings)
        updater.check_inputs()
        results["air_quality_edges"] = updater.update_graph(graph)
    else:
        logger.warning("No air quality files configured. Skipping air quality pass.")

    if settings.updaters.noise_server_url:
        noise_updater = NoiseLevelGraphUpdater(settings)
        noise_updater.set_graph_updater_manager(GraphUpdaterManager(graph))
        noise_updater.configure()
        noise_updater.run_polling()
        results["noise_level_edges"] = sum(
            1 for edge in graph.street_edges() if edge.noise_level is not None
        )
    else:
        logger.info("Noise broker url not configured. Skipping noise pass.")

    return results


def run_polling_updaters(
    graph: StreetGraph, settings: AppConfig, max_runs: Optional[int] = None
) -> List[PollingGraphUpdater]:
    """Runs the air quality and noise updaters in threads until interrupted or ``max_runs`` is reached."""
    manager = GraphUpdaterManager(graph)
    stop_event = threading.Event()
    updaters: List[PollingGraphUpdater] = [
        AirQualityGraphUpdater(settings),
        NoiseLevelGraphUpdater(settings),
    ]

    threads = []
    for updater in updaters:
        updater.set_graph_updater_manager(manager)
        thread = threading.Thread(
            target=updater.run,
            args=(stop_event, max_runs),
            name=type(updater).__name__,
            daemon=True,
        )
        thread.start()
        threads.append(thread)

    try:
        for thread in threads:
            while thread.is_alive():
                thread.join(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping graph updaters...")
        stop_event.set()
        for thread in threads:
            thread.join()
    return updaters


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Enrich street edges with air quality and noise level data."
    )
    parser.add_argument("--edges", type=Path, help="Vector file with street edge LineStrings.")
    parser.add_argument("--layer", help="Layer name inside the edges file.")
    parser.add_argument(
        "--air-quality", type=Path, nargs="*", default=None,
        help="Air quality NetCDF/GeoTIFF files, applied in order.",
    )
    parser.add_argument("--noise-url", help="NGSI broker entities endpoint.")
    parser.add_argument("--output-dir", type=Path, help="Directory for the enriched edges.")
    parser.add_argument("--workers", type=int, help="Threads used for air quality sampling.")
    parser.add_argument(
        "--poll", action="store_true",
        help="Keep polling the data sources instead of running a single pass.",
    )
    parser.add_argument("--max-runs", type=int, help="Stop polling after this many runs per updater.")
    return parser.parse_args(argv)


def apply_args(settings: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Returns a copy of ``settings`` with command line overrides applied."""
    settings = settings.model_copy(deep=True)
    if args.edges is not None:
        settings.paths.street_edges_path = args.edges
    if args.layer is not None:
        settings.input_data.edge_layer = args.layer
    if args.air_quality is not None:
        settings.paths.air_quality_files = list(args.air_quality)
    if args.noise_url is not None:
        settings.updaters.noise_server_url = args.noise_url
    if args.output_dir is not None:
        settings.paths.output_dir = args.output_dir
    if args.workers is not None:
        settings.processing.dask_workers = args.workers
    return settings


def main(argv: Optional[List[str]] = None):
    """Runs the edge enrichment workflow."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    start_time = time.time()
    args = parse_args(argv)
    settings = apply_args(app_settings, args)
    logger.info("--- Starting Edge Enrichment Workflow ---")

    try:
        setup_output_dir(settings.paths.output_dir)

        logger.info("--- Loading street edges ---")
        graph = load_street_graph(settings)

        if args.poll:
            logger.info("--- Polling data sources ---")
            run_polling_updaters(graph, settings, max_runs=args.max_runs)
        else:
            logger.info("--- Enriching street edges ---")
            results = enrich_graph(graph, settings)
            logger.info(f"Enrichment results: {results}")

        output_path = save_street_graph(graph, settings)
        logger.info(f"Enriched street edges saved to {output_path}")
    except FileNotFoundError as fnf_error:
        logger.error(
            f"--- Workflow Halted: Required file not found --- \nError: {fnf_error}",
            exc_info=True,
        )
        sys.exit(1)
    except DatasetLoadError as load_error:
        logger.error(f"--- Workflow Halted: Invalid air quality data --- \nError: {load_error}")
        sys.exit(1)
    except ValueError as val_error:
        logger.error(
            f"--- Workflow Halted: Data or Configuration error --- \nError: {val_error}",
            exc_info=True,
        )
        sys.exit(1)

    end_time = time.time()
    logger.info(
        f"--- Edge Enrichment Workflow Finished Successfully in {end_time - start_time:.2f} seconds ---"
    )


if __name__ == "__main__":
    main()
