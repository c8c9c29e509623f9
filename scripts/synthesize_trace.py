#!/usr/bin/env python3
"""Write a synthetic noisy fix trace for `nearfix replay`."""

from __future__ import annotations

import argparse
import json
import time
from pathlib import Path

from nearfix.replay import synthesize_trace


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("output", type=Path)
    parser.add_argument("--lat", type=float, default=51.5074)
    parser.add_argument("--lon", type=float, default=-0.1278)
    parser.add_argument("--count", type=int, default=60)
    parser.add_argument("--interval", type=float, default=1.0)
    parser.add_argument("--noise", type=float, default=4.0, help="Noise sigma in meters")
    parser.add_argument("--outliers", type=float, default=0.1, help="Outlier probability")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    fixes = synthesize_trace(
        (args.lat, args.lon),
        count=args.count,
        start=time.time(),
        interval=args.interval,
        noise_m=args.noise,
        outlier_rate=args.outliers,
        seed=args.seed,
    )
    args.output.write_text("".join(json.dumps(fix.to_dict()) + "\n" for fix in fixes))
    print(f"wrote {len(fixes)} fixes to {args.output}")


if __name__ == "__main__":
    main()
