#!/usr/bin/env python3
"""
CLI script for generating synthetic NEO risk datasets.
Provides easy interface to the SyntheticDataGenerator.
"""

import sys
from pathlib import Path
import click

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from astro_risk.errors import InvalidInput
from astro_risk.ml.features.risk_features import feature_names
from astro_risk.simulation.data_generator import SyntheticDataGenerator
from astro_risk.utils.logging_config import get_logger

logger = get_logger("data_generator")


@click.command()
@click.option(
    '--samples',
    '-n',
    default=10000,
    type=int,
    help='Number of samples to generate'
)
@click.option(
    '--mode',
    '-m',
    default='balanced',
    type=click.Choice(['unbiased', 'balanced']),
    help='Unbiased population sampling or 60/25/15 risk-band mix'
)
@click.option(
    '--output',
    '-o',
    default='data/processed/neo_risk_dataset.csv',
    type=click.Path(),
    help='Output file (.csv or .parquet)'
)
@click.option(
    '--seed',
    type=int,
    help='Random seed for reproducibility'
)
@click.option(
    '--quick',
    is_flag=True,
    help='Quick test (500 samples)'
)
def main(samples, mode, output, seed, quick):
    """
    Generate a labeled synthetic NEO dataset.

    Examples:
        # Default balanced dataset (10k samples)
        python scripts/generate_dataset.py

        # Population-level sampling
        python scripts/generate_dataset.py --mode unbiased -n 5000

        # Reproducible parquet output
        python scripts/generate_dataset.py --seed 42 -o data/processed/neo.parquet
    """
    if quick:
        samples = 500
        output = 'data/processed/quick_test.csv'
        logger.info("Quick mode: 500 samples")

    click.echo("\n" + "="*60)
    click.echo("Dataset Generation Configuration")
    click.echo("="*60)
    click.echo(f"Samples:       {samples}")
    click.echo(f"Mode:          {mode}")
    click.echo(f"Output:        {output}")
    if seed is not None:
        click.echo(f"Random seed:   {seed}")
    click.echo("="*60 + "\n")

    generator = SyntheticDataGenerator(seed=seed)

    try:
        click.echo("Generating dataset...")
        dataset = generator.generate_dataset(samples, mode)

        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        df = dataset.to_dataframe()
        if output_path.suffix == '.parquet':
            df.to_parquet(output_path, index=False)
        else:
            df.to_csv(output_path, index=False)

        stats = dataset.statistics()

        click.echo("\n" + "="*60)
        click.echo("Dataset Statistics")
        click.echo("="*60)
        click.echo(f"Samples:              {stats['total_samples']:,}")
        if 'label_stats' in stats:
            labels = stats['label_stats']
            click.echo(
                f"Risk:                 {labels['risk_min']:.3f} - {labels['risk_max']:.3f} "
                f"(mean {labels['risk_mean']:.3f})"
            )
            click.echo(
                f"Confidence:           {labels['confidence_min']:.3f} - {labels['confidence_max']:.3f} "
                f"(mean {labels['confidence_mean']:.3f})"
            )

        if mode == 'balanced':
            click.echo("\nSamples by risk band:")
            for band, count in stats['band_counts'].items():
                click.echo(f"  {band:10s}: {count:,}")

        click.echo("\nFeature means:")
        for name, mean in zip(feature_names(), stats['feature_stats']['means']):
            click.echo(f"  {name:25s}: {mean:.3f}")

        click.echo("="*60)
        click.echo(f"\n✅ Dataset saved to: {output_path}")
        return 0

    except (InvalidInput, OSError, ImportError) as e:
        # ImportError: parquet output without pyarrow/fastparquet
        click.echo(f"\n❌ Error: {e}", err=True)
        logger.exception("Dataset generation failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
