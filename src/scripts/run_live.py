#!/usr/bin/env python3
"""
Live DLA Runner

Runs the aggregation engine on a worker thread and drains newly attached
particles from the main thread, the way a renderer would.
"""

import argparse
import logging
import sys
import time

from dla_engine import (
    AttractorType,
    LatticeType,
    RunConfig,
    RunController,
    load_config,
)


def build_config(args) -> RunConfig:
    """Start from a config file if given, then apply command-line overrides."""
    config = load_config(args.config) if args.config else RunConfig()
    overrides = {}
    if args.lattice is not None:
        overrides["lattice_type"] = LatticeType(args.lattice)
    if args.attractor is not None:
        overrides["attractor_type"] = AttractorType(args.attractor)
    if args.extent is not None:
        overrides["attractor_extent"] = args.extent
    if args.sticky is not None:
        overrides["sticky_coefficient"] = args.sticky
    if args.N is not None:
        overrides["target_count"] = args.N
        overrides["continuous"] = args.N == 0
    if args.seed is not None:
        overrides["seed"] = args.seed
    return config.with_changes(**overrides)


def main():
    parser = argparse.ArgumentParser(
        description="Grow a DLA cluster on a worker thread and stream its particles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--dim", type=int, choices=[2, 3], default=2, help="Lattice dimension")
    parser.add_argument("--lattice", choices=[t.value for t in LatticeType], default=None)
    parser.add_argument("--attractor", choices=[t.value for t in AttractorType], default=None)
    parser.add_argument("--extent", type=int, default=None, help="Line/plane attractor size")
    parser.add_argument("--sticky", type=float, default=None, help="Sticky coefficient in (0, 1]")
    parser.add_argument("--N", type=int, default=None, help="Particles to attach (0 = until Ctrl-C)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducibility")
    parser.add_argument("--config", type=str, default=None, help="JSON or TOML run configuration")
    parser.add_argument("--poll", type=float, default=0.25, help="Consumer poll period in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    controller = RunController(dimension=args.dim, config=build_config(args))
    config = controller.config
    print(f"Running {args.dim}D {config.lattice_type.value} lattice, "
          f"{config.attractor_type.value} attractor, sticky={config.sticky_coefficient}, "
          f"N={config.effective_target or 'continuous'}")

    received = 0
    start_time = time.time()
    controller.start()
    try:
        while controller.is_running or controller.pending():
            batch = controller.drain_new_attachments()
            received += len(batch)
            if batch:
                snap = controller.metrics()
                print(f"  +{len(batch):5d}  size={snap.size:7d}  misses={snap.misses:7d}  "
                      f"R^2={snap.radius_squared:9.1f}  D~{snap.fractal_dimension:.3f}")
            time.sleep(args.poll)
    except KeyboardInterrupt:
        controller.raise_abort_signal()
    controller.wait()
    received += len(controller.drain_new_attachments())

    elapsed_time = time.time() - start_time
    snap = controller.metrics()
    print("\nSimulation finished")
    print(f"   Time elapsed: {elapsed_time:.2f} seconds")
    print(f"   Particles attached: {snap.size} (received {received})")
    print(f"   Aggregate misses: {snap.misses}")
    print(f"   Spanning radius: {snap.radius_squared ** 0.5:.2f}")
    print(f"   Fractal dimension (log N / log R): {snap.fractal_dimension:.4f}")
    print(f"   Fractal dimension (growth fit): {controller.fit_fractal_dimension():.4f}")
    print(f"   Fractal dimension (sandbox): {controller.estimate_sandbox_dimension():.4f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
