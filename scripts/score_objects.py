#!/usr/bin/env python3
"""
Score near-Earth objects with the predictor runtime.

Accepts either a NASA NeoWs JSON response (feed or browse format, or a plain
list of object records) or a CSV with columns size_m, velocity_km_s,
miss_distance_au and is_pha. Loads the model from the artifact directory or
local store, training one on demand if neither exists.

Usage:
    python scripts/score_objects.py data/raw/neo_feed.json
    python scripts/score_objects.py objects.csv -o data/processed/scores.csv --no-train
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Tuple

import click
import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from astro_risk.errors import InvalidInput
from astro_risk.ml.features.risk_features import ObjectParams
from astro_risk.ml.inference import PredictorRuntime, RuntimeCapabilities
from astro_risk.utils.config_loader import Config
from astro_risk.utils.logging_config import LogConfig, get_logger
from astro_risk.utils.metrics import PerformanceMetrics, timer

logger = get_logger("inference")


def load_neo_records(path: Path) -> List[Tuple[str, ObjectParams]]:
    """Read (name, params) pairs from a NeoWs JSON file; malformed records are skipped."""
    with open(path) as f:
        data = json.load(f)

    if isinstance(data, dict) and 'near_earth_objects' in data:
        records = data['near_earth_objects']
        if isinstance(records, dict):
            # Feed format groups objects by date
            records = [rec for day in records.values() for rec in day]
    elif isinstance(data, list):
        records = data
    else:
        raise click.ClickException("Unrecognized JSON layout, expected NeoWs feed/browse or a list")

    objects = []
    for record in records:
        try:
            objects.append((str(record.get('name', record.get('id', '?'))), ObjectParams.from_neo_record(record)))
        except InvalidInput as e:
            logger.warning(f"Skipping record: {e}")
    return objects


def load_csv_objects(path: Path) -> List[Tuple[str, ObjectParams]]:
    """Read (name, params) pairs from a CSV of raw observables."""
    df = pd.read_csv(path)
    required = {'size_m', 'velocity_km_s', 'miss_distance_au'}
    missing = required - set(df.columns)
    if missing:
        raise click.ClickException(f"CSV is missing columns: {', '.join(sorted(missing))}")

    objects = []
    for i, row in df.iterrows():
        name = str(row['name']) if 'name' in df.columns else str(i)
        objects.append((name, ObjectParams(
            size=float(row['size_m']),
            velocity=float(row['velocity_km_s']),
            miss_distance=float(row['miss_distance_au']),
            is_pha=bool(row['is_pha']) if 'is_pha' in df.columns else False,
        )))
    return objects


async def score(runtime: PredictorRuntime, params: List[ObjectParams], metrics: PerformanceMetrics):
    try:
        await runtime.init()
        with timer("batch_inference", metrics):
            results = await runtime.predict_batch(params)
        return results, runtime.stats(), runtime.model_info()
    finally:
        await runtime.shutdown()


@click.command()
@click.argument('input_file', type=click.Path(exists=True))
@click.option('--config-dir', default='config', type=click.Path(), help='Directory with YAML configs')
@click.option('--output', '-o', type=click.Path(), help='Write scores to a CSV file')
@click.option('--train/--no-train', default=True, help='Train a model if none can be loaded')
@click.option('--persist/--no-persist', default=True, help='Use and update the local model store')
@click.option('--top', default=10, type=int, help='Number of highest-risk objects to print')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def main(input_file, config_dir, output, train, persist, top, verbose):
    """Score every object in INPUT_FILE for collision risk."""
    if verbose:
        LogConfig.setup(log_level="DEBUG")

    config = Config(Path(config_dir))
    config.load_all()

    path = Path(input_file)
    objects = load_csv_objects(path) if path.suffix == '.csv' else load_neo_records(path)
    if not objects:
        click.echo("No objects to score.", err=True)
        return 1
    click.echo(f"📂 Loaded {len(objects)} objects from {path}")

    runtime = PredictorRuntime(
        config.runtime,
        RuntimeCapabilities(can_persist=persist, can_train=train),
    )
    metrics = PerformanceMetrics()
    results, stats, info = asyncio.run(score(runtime, [p for _, p in objects], metrics))

    df = pd.DataFrame([
        {
            'name': name,
            'size_m': params.size,
            'velocity_km_s': params.velocity,
            'miss_distance_au': params.miss_distance,
            'is_pha': params.is_pha,
            **result.to_dict(),
        }
        for (name, params), result in zip(objects, results)
    ]).sort_values('risk', ascending=False)

    click.echo(f"\nModel: {info['cache_status']['source'] or 'none'} "
               f"(version {info['cache_status']['version']}, state {info['state']})")
    click.echo(f"\nTop {min(top, len(df))} objects by risk:")
    click.echo(df.head(top)[['name', 'risk', 'confidence', 'modelUsed']].to_string(index=False))

    latency = metrics.get_stats("batch_inference")
    click.echo(f"\nPredictions: {stats.total_predictions} "
               f"(ml {stats.ml_predictions}, fallback {stats.fallback_predictions})")
    click.echo(f"Batch latency: {latency['mean']:.1f} ms, error rate {stats.error_rate:.1%}")

    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output, index=False)
        click.echo(f"\n✅ Scores saved to: {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
