"""Paint a reference image with refined brush strokes.

Runs a full painting session and writes its artifacts:
    1. Load and validate the optimizer config (defaults when omitted)
    2. Load the reference image, optionally resized to --size
    3. Drive BrushOptimizer with FrameScheduler until it stops
       (difference exhausted, --max-strokes reached or --max-ticks spent)
    4. Drop any stroke still under refinement so the canvas matches the log
    5. Save painting.png, strokes.yaml (strokes.v1) and summary.yaml

Refactored architecture:
    - paint_main(reference_path, output_dir, ...) → dict
        * Callable function (used by tests)
        * Returns: {painting_path, strokes_path, summary_path, report}
    - CLI entry point: if __name__ == "__main__"

CLI:
    python scripts/paint.py --reference data/cat.png --output out/cat/
    python scripts/paint.py --reference cat.png --output out/ \\
                            --config configs/optimizer.v1.yaml \\
                            --max-strokes 200 --size 160 120 --seed 7 \\
                            --snapshot-every 500

Output structure:
    <output_dir>/
        painting.png
        strokes.yaml
        summary.yaml
        snapshots/frame_000500.png   (with --snapshot-every)
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from brush_painter.optimization import BrushOptimizer, FrameScheduler
from brush_painter.raster import RasterSurface
from brush_painter.utils import fs, validators
from brush_painter.utils.logging_config import (
    install_excepthook,
    pop_context,
    push_context,
    set_level,
    setup_logging,
    shutdown,
)
from brush_painter.utils.profiler import timer
from brush_painter.utils.torch_utils import seed_everything

logger = logging.getLogger(__name__)


def paint_main(
    reference_path: str,
    output_dir: str,
    config_path: Optional[str] = None,
    max_strokes: Optional[int] = None,
    max_ticks: Optional[int] = None,
    size: Optional[Tuple[int, int]] = None,
    seed: Optional[int] = None,
    snapshot_every: Optional[int] = None,
) -> Dict[str, Any]:
    """Run one painting session and write its artifacts.

    Parameters
    ----------
    reference_path : str
        Reference image (any format PIL reads)
    output_dir : str
        Directory for painting.png, strokes.yaml and summary.yaml
    config_path : str, optional
        optimizer.v1 YAML; defaults are used when None
    max_strokes : int, optional
        Overrides config.max_strokes
    max_ticks : int, optional
        Tick budget for the scheduler
    size : (int, int), optional
        Canvas (width, height); the reference's own size when None
    seed : int, optional
        Overrides config.seed
    snapshot_every : int, optional
        Save a canvas snapshot every N ticks

    Returns
    -------
    dict
        {painting_path, strokes_path, summary_path, report}
    """
    out = fs.ensure_dir(output_dir)

    cfg = validators.load_optimizer_config(config_path) if config_path else validators.OptimizerConfigV1()
    overrides = {}
    if max_strokes is not None:
        overrides['max_strokes'] = max_strokes
    if seed is not None:
        overrides['seed'] = seed
    if overrides:
        cfg = cfg.model_copy(update=overrides)
    if cfg.seed is not None:
        seed_everything(cfg.seed)

    reference = fs.load_image_rgba(reference_path)
    width, height = size if size else (reference.shape[1], reference.shape[0])
    logger.info(f"Painting {reference_path} on a {width}x{height} canvas")
    push_context(reference=Path(reference_path).name)
    try:
        return _run_session(reference_path, out, cfg, reference, width, height, max_ticks, snapshot_every)
    finally:
        pop_context(["reference"])


def _run_session(
    reference_path: str,
    out: Path,
    cfg: validators.OptimizerConfigV1,
    reference,
    width: int,
    height: int,
    max_ticks: Optional[int],
    snapshot_every: Optional[int],
) -> Dict[str, Any]:
    """Drive one session and write its artifacts (see paint_main)."""
    surface = RasterSurface(width, height)
    optimizer = BrushOptimizer(
        surface,
        reference,
        config=cfg,
        on_status=lambda text: logger.debug(text),
    )

    snapshot_dir = out / "snapshots"

    def on_frame(frame: int, opt: BrushOptimizer) -> None:
        if snapshot_every and frame % snapshot_every == 0:
            fs.atomic_save_image(opt.surface.get_image_data(), snapshot_dir / f"frame_{frame:06d}.png")

    timings = {}
    with timer("session", sink=timings.__setitem__):
        ticks = FrameScheduler(optimizer, on_frame=on_frame).run(max_ticks=max_ticks)

    # Artifacts describe committed strokes only
    optimizer.abandon_stroke()

    painting_path = out / "painting.png"
    fs.atomic_save_image(surface.get_image_data(), painting_path)

    strokes_path = out / "strokes.yaml"
    fs.atomic_yaml_dump(
        {
            'schema': 'strokes.v1',
            'width': width,
            'height': height,
            'strokes': optimizer.stroke_log,
        },
        strokes_path,
    )

    report = optimizer.quality_report()
    report['ticks'] = ticks
    report['elapsed_s'] = round(timings['session'], 3)
    summary_path = out / "summary.yaml"
    fs.atomic_yaml_dump(
        {
            'reference': str(reference_path),
            'canvas': {'width': width, 'height': height},
            'metrics': report,
            'config': validators.config_to_dict(cfg),
        },
        summary_path,
    )

    logger.info(
        f"Painting complete: {report['strokes']} strokes, PSNR {report['psnr']:.2f} dB, "
        f"SSIM {report['ssim']:.3f}. Artifacts saved to {out}"
    )
    optimizer.destroy()

    return {
        'painting_path': painting_path,
        'strokes_path': strokes_path,
        'summary_path': summary_path,
        'report': report,
    }


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Approximate a reference image with optimized brush strokes"
    )
    parser.add_argument(
        "--reference",
        type=str,
        required=True,
        help="Path to reference image (PNG/JPEG)",
    )
    parser.add_argument(
        "--output",
        type=str,
        required=True,
        help="Output directory for artifacts",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to optimizer config (optimizer.v1 YAML); defaults when omitted",
    )
    parser.add_argument(
        "--max-strokes",
        type=int,
        default=None,
        help="Stop after this many committed strokes",
    )
    parser.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="Stop after this many scheduler ticks",
    )
    parser.add_argument(
        "--size",
        type=int,
        nargs=2,
        metavar=("W", "H"),
        help="Canvas size; the reference is resized to it",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="RNG seed for a reproducible session",
    )
    parser.add_argument(
        "--snapshot-every",
        type=int,
        default=None,
        help="Save a canvas snapshot every N ticks",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="DEBUG logging (per-step status and stroke decisions)",
    )

    args = parser.parse_args()

    setup_logging(
        log_level="INFO",
        context={"app": "paint"},
        quiet_libs=["PIL"],
    )
    if args.verbose:
        set_level("DEBUG")
    install_excepthook()

    result = paint_main(
        reference_path=args.reference,
        output_dir=args.output,
        config_path=args.config,
        max_strokes=args.max_strokes,
        max_ticks=args.max_ticks,
        size=tuple(args.size) if args.size else None,
        seed=args.seed,
        snapshot_every=args.snapshot_every,
    )

    print("\n=== Paint Complete ===")
    print(f"Painting: {result['painting_path']}")
    print(f"Strokes: {result['strokes_path']}")
    print(f"Summary: {result['summary_path']}")
    shutdown()


if __name__ == "__main__":
    main()
