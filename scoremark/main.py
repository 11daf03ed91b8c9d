"""
Scoremark - Entry Point

Headless session runner: loads a piece, optionally adds markings, saves, and
reports the outcome.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from scoremark import __version__
from scoremark.core.annotations import (
    Annotation,
    AnnotationStore,
    HistoryManager,
    JsonAnnotationRepository,
    MarkColor,
    PointMark,
)
from scoremark.core.conflicts import ConflictResolutionWorkflow, ResolutionAction
from scoremark.core.detection import RegionDetector, StickerImporter
from scoremark.core.errors import ScoremarkError, ValidationError
from scoremark.core.export import PdfExporter, load_sticker_images
from scoremark.core.session import MembershipDirectory, Role, SessionContext
from scoremark.core.storage import LocalBlobStore, RestAnnotationRepository, RestBlobStore
from scoremark.core.sync import SaveResult, SaveStatus, SyncController
from scoremark.utils import AppSettings, get_app_data_dir

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure application-wide logging."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(get_app_data_dir() / "scoremark.log", encoding="utf-8"),
        ],
    )
    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_mark(value: str) -> Tuple[float, float, int, MarkColor]:
    """Parse ``x,y[,page[,color]]`` from the command line."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) < 2 or len(parts) > 4:
        raise argparse.ArgumentTypeError(f"Expected x,y[,page[,color]], got {value!r}")
    try:
        x, y = float(parts[0]), float(parts[1])
        page = int(parts[2]) if len(parts) > 2 else 1
        color = MarkColor(parts[3].lower()) if len(parts) > 3 else MarkColor.RED
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid mark {value!r}: {e}")
    return x, y, page, color


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scoremark",
        description="Load a piece's annotations, add markings and save them.",
    )
    parser.add_argument("piece", help="Piece (document) identifier")
    parser.add_argument("--actor", required=True, help="Acting user identifier")
    parser.add_argument("--name", help="Display name of the acting user")
    parser.add_argument("--role", choices=[r.value for r in Role], default=Role.STUDENT.value,
                        help="Role of the acting user in the piece")
    parser.add_argument("--teacher", action="append", default=[], metavar="ACTOR",
                        help="Another member who is a teacher of the piece (repeatable)")
    parser.add_argument("--mark", action="append", type=parse_mark, default=[],
                        metavar="X,Y[,PAGE[,COLOR]]", help="Place a dot (repeatable)")
    parser.add_argument("--base-pdf", help="Unmarked PDF for sticker detection")
    parser.add_argument("--marked-pdf", help="Marked-up PDF for sticker detection")
    parser.add_argument("--export", nargs=2, metavar=("SCORE_PDF", "OUTPUT_PDF"),
                        help="Write an annotated copy of the score after saving")
    parser.add_argument("--on-conflict", default="cancel",
                        choices=[a.value for a in ResolutionAction] + ["cancel"],
                        help="How to resolve every conflict (default: cancel the save)")
    parser.add_argument("--settings", help="Path to a settings JSON file")
    parser.add_argument("--log-level", help="Override the configured log level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    if bool(args.base_pdf) != bool(args.marked_pdf):
        parser.error("--base-pdf and --marked-pdf must be given together")
    return args


def build_backend(settings: AppSettings):
    """
    Create the repository and blob store the settings ask for.

    Returns:
        (repository, blob_store) tuple
    """
    if settings.backend == "rest":
        return (RestAnnotationRepository(settings.rest_url, settings.api_key),
                RestBlobStore(settings.rest_url, settings.api_key,
                              bucket=settings.sticker_bucket))
    return JsonAnnotationRepository(), LocalBlobStore()


def print_result(result: SaveResult) -> None:
    print(result.message)
    for conflict in result.conflicts:
        creator = conflict.existing_creator
        who = "unknown"
        if creator is not None:
            role = creator.role.value if creator.role else "unknown"
            who = f"{creator.name} ({role})"
        print(f"  page {conflict.new.page}: new at ({conflict.new.x:.0f}, {conflict.new.y:.0f}) "
              f"is {conflict.distance:.1f} from {who}'s annotation")


async def resolve_all(sync: SyncController, conflicts: list,
                      choice: str) -> Optional[SaveResult]:
    """
    Apply one choice to every conflict.

    Where the choice is not allowed (a student facing a teacher's
    annotation) the existing annotation is kept.
    """
    if choice == "cancel":
        discarded = sync.cancel_resolution()
        print(f"Save cancelled; discarded {len(discarded)} annotation(s).")
        return None

    action = ResolutionAction(choice)
    result = None
    for index, conflict in enumerate(conflicts):
        chosen = action
        if chosen not in sync.workflow.allowed_actions(conflict):
            logger.warning("%s is not allowed for conflict %d; keeping the existing one",
                           chosen.value, index + 1)
            chosen = ResolutionAction.KEEP_EXISTING
        result = await sync.resolve(index, chosen)
    return result


async def run_session(args: argparse.Namespace, settings: AppSettings) -> int:
    directory = MembershipDirectory()
    directory.register_profile(args.actor, args.name or args.actor)
    directory.add_member(args.piece, args.actor, Role(args.role))
    for teacher in args.teacher:
        directory.add_member(args.piece, teacher, Role.TEACHER)

    session = SessionContext(args.actor, args.piece, directory)
    repository, blobs = build_backend(settings)
    store = AnnotationStore(session, repository, HistoryManager(settings.history_limit))
    sync = SyncController(
        store,
        directory,
        ConflictResolutionWorkflow(session, gate_keep_both=settings.gate_keep_both),
        conflict_distance=settings.conflict_distance,
    )

    try:
        count = await store.load()
        print(f"Loaded {count} annotation(s) for {args.piece}.")

        for x, y, page, color in args.mark:
            store.add(Annotation(args.piece, args.actor, x, y, PointMark(color), page=page))

        if args.base_pdf:
            detector = RegionDetector(
                scale=settings.detection_scale,
                threshold=settings.detection_threshold,
                min_pixels=settings.min_region_pixels,
                padding=settings.region_padding,
            )
            regions = await asyncio.to_thread(detector.detect, args.base_pdf, args.marked_pdf)
            added = await StickerImporter(store, blobs).import_regions(regions)
            print(f"Detected {len(regions)} region(s), added {len(added)} sticker(s).")

        result = await sync.save()
        print_result(result)
        if result.status == SaveStatus.CONFLICTS:
            result = await resolve_all(sync, result.conflicts, args.on_conflict)
            if result is None:
                return 1
            print(result.message)

        if args.export:
            source_pdf, output_pdf = args.export
            images = await load_sticker_images(store.annotations, blobs)
            report = await asyncio.to_thread(
                PdfExporter().export, source_pdf, output_pdf, store.annotations, images)
            print(report.message)
    except ScoremarkError as e:
        logger.error("Session failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        for backend in (repository, blobs):
            if hasattr(backend, "aclose"):
                await backend.aclose()

    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Application entry point."""
    args = parse_args(argv)
    try:
        settings = AppSettings.load(Path(args.settings) if args.settings else None)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(args.log_level or settings.log_level)
    logger.info("Scoremark %s starting (%s backend)", __version__, settings.backend)

    sys.exit(asyncio.run(run_session(args, settings)))


if __name__ == "__main__":
    main()
