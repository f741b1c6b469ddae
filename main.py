"""DR Detect: diabetic retinopathy screening assistant.

Command-line entry point: screens one retinal image with the configured
engine, prints the text report, and optionally exports it.
"""

import argparse
import asyncio
import logging
import sys

import i18n
from core.config import REPORT_FORMATS, ScreeningConfig, load_config
from core.engines import MockEngine
from core.image_ingestor import ImageIngestor
from core.logging_setup import configure_logging
from core.report_formatter import ReportMetadata, suggested_filename
from core.report_generator import ReportGenerator
from core.session_controller import SessionController
from core.session_history import SessionHistory
from core.utils import EngineError, IncomingFile, IngestError, get_reports_dir

logger = logging.getLogger("drdetect")

EXIT_OK = 0
EXIT_ENGINE_ERROR = 1
EXIT_INGEST_ERROR = 2
EXIT_REPORT_ERROR = 3


def build_controller(config: ScreeningConfig) -> SessionController:
    """Wire a controller from configuration."""
    return SessionController(
        engine=MockEngine(latency_s=config.mock_latency_s, seed=config.mock_seed),
        ingestor=ImageIngestor(max_size_bytes=config.max_upload_bytes),
        history=SessionHistory(capacity=config.history_capacity),
        timeout_s=config.analysis_timeout_s,
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="drdetect",
        description="AI-assisted diabetic retinopathy screening of a retinal image.",
    )
    parser.add_argument("image", help="Path to a retinal fundus image")
    parser.add_argument(
        "--report",
        nargs="?",
        const="",
        help="Write the report to this path (default: the reports directory)",
    )
    parser.add_argument("--format", choices=REPORT_FORMATS, help="Report format (default from settings)")
    parser.add_argument("--seed", type=int, help="Seed for the mock engine")
    parser.add_argument("--latency", type=float, help="Simulated engine latency in seconds")
    parser.add_argument("--timeout", type=float, help="Analysis deadline in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


async def screen(controller: SessionController, image_path: str) -> ReportMetadata:
    """Upload and analyze one image. Returns report metadata on success."""
    image = await controller.upload(IncomingFile.from_path(image_path))
    await controller.analyze()
    return ReportMetadata(image_name=image.name)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    config = load_config()
    if args.format:
        config.report_format = args.format
    if args.seed is not None:
        config.mock_seed = args.seed
    if args.latency is not None:
        config.mock_latency_s = max(0.0, args.latency)
    if args.timeout is not None:
        config.analysis_timeout_s = args.timeout

    i18n.init(language=config.language)
    controller = build_controller(config)

    try:
        metadata = asyncio.run(screen(controller, args.image))
    except OSError as e:
        logger.error("Cannot read %s: %s", args.image, e)
        return EXIT_INGEST_ERROR
    except IngestError as e:
        logger.error("%s", e)
        return EXIT_INGEST_ERROR
    except EngineError as e:
        logger.error("%s", e)
        return EXIT_ENGINE_ERROR

    print(controller.render_report(metadata))

    if args.report is not None:
        output = args.report or str(get_reports_dir() / suggested_filename(metadata, config.report_format))
        ok = ReportGenerator().generate(
            controller.session.current_result,
            output,
            format=config.report_format,
            metadata=metadata,
        )
        if not ok:
            logger.error(i18n.t("cli.report_failed", path=output))
            return EXIT_REPORT_ERROR
        logger.info(i18n.t("cli.report_saved", path=output))

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
