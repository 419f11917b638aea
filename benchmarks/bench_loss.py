"""Time multiway Stein's loss evaluations against the dense Kronecker Stein's loss."""

from __future__ import annotations

import argparse
import itertools
import json
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from mwstein import StructuredCovarianceLoss, kron_covariance, stein_loss
from mwstein.sim import simulate_factors

# dense Kronecker covariances above this size are skipped
DENSE_MAX_P = 1500


@dataclass
class BenchmarkResult:
    p_k: int
    n_modes: int
    method: str
    value: float | None
    us_per_call: float | None
    status: str


def _time_calls(func, repeats: int) -> tuple[float, float]:
    value = func()
    t0 = time.perf_counter()
    for _ in range(repeats):
        func()
    elapsed = time.perf_counter() - t0
    return value, 1e6 * elapsed / repeats


def run_benchmark(
    grid: Iterable[tuple[int, int]], *, repeats: int = 200, seed: int = 0
) -> list[BenchmarkResult]:
    loss = StructuredCovarianceLoss()
    results: list[BenchmarkResult] = []

    for p_k, n_modes in grid:
        dims = (p_k,) * n_modes
        B, b = simulate_factors(dims, scale=1.2, seed=seed, normalize=True)
        Psi, psi = simulate_factors(dims, scale=1.0, seed=seed + 1, normalize=True)

        for method, func in (
            ("multiway", lambda: loss.evaluate(B, Psi, b, psi)),
            ("kronecker", lambda: loss.evaluate_kronecker(B, Psi, b, psi)),
        ):
            value, us = _time_calls(func, repeats)
            results.append(BenchmarkResult(p_k, n_modes, method, value, us, "ok"))

        if p_k**n_modes > DENSE_MAX_P:
            results.append(BenchmarkResult(p_k, n_modes, "dense", None, None, "skipped"))
            continue
        S_hat = kron_covariance(B, b)
        S = kron_covariance(Psi, psi)
        value, us = _time_calls(lambda: stein_loss(S_hat, S), max(1, repeats // 20))
        results.append(BenchmarkResult(p_k, n_modes, "dense", value, us, "ok"))

    return results


def main(argv: Iterable[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--p", nargs="*", type=int, default=[3, 8, 20])
    parser.add_argument("--modes", nargs="*", type=int, default=[2, 3])
    parser.add_argument("--repeats", type=int, default=200)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--json", type=Path, help="Optional path to dump JSON results")
    args = parser.parse_args(argv)

    grid = list(itertools.product(args.p, args.modes))
    results = run_benchmark(grid, repeats=args.repeats, seed=args.seed)

    for row in results:
        us = f"{row.us_per_call:10.1f}us" if row.us_per_call is not None else "         -"
        print(
            f"p_k={row.p_k:3d} modes={row.n_modes} | {row.method:9s} {us} "
            f"value={row.value!r} status={row.status}"
        )

    if args.json:
        args.json.write_text(json.dumps([row.__dict__ for row in results], indent=2))


if __name__ == "__main__":
    main()
