#!/usr/bin/env python3
"""
Train the NEO risk scoring network on synthetic data.

Generates a labeled dataset, holds out a test split, trains the
6 -> 16 -> 8 -> 2 network with early stopping, writes the model artifact
(and optionally the local model store copy) and prints a performance report.

Usage:
    python scripts/train_risk_model.py
    python scripts/train_risk_model.py --samples 2000 --epochs 20 --seed 42
"""

import sys
from pathlib import Path

import click

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from astro_risk.errors import AstroRiskError
from astro_risk.ml.artifacts import LocalModelStore, save_artifact
from astro_risk.ml.training.trainer import RiskModelTrainer, TrainerConfig, generate_performance_report
from astro_risk.simulation.data_generator import SyntheticDataGenerator
from astro_risk.utils.config_loader import Config
from astro_risk.utils.logging_config import LogConfig, get_logger

logger = get_logger("trainer")


@click.command()
@click.option('--config-dir', default='config', type=click.Path(), help='Directory with YAML configs')
@click.option('--samples', '-n', type=int, help='Number of synthetic samples (overrides config)')
@click.option('--mode', type=click.Choice(['unbiased', 'balanced']), help='Dataset generation mode')
@click.option('--epochs', '-e', type=int, help='Maximum training epochs (overrides config)')
@click.option('--seed', type=int, help='Random seed for reproducibility')
@click.option('--output', '-o', type=click.Path(), help='Artifact directory (defaults to runtime config)')
@click.option('--store/--no-store', default=True, help='Also write the model to the local model store')
@click.option('--report', type=click.Path(), help='Write the markdown report to this file')
@click.option('--progress', is_flag=True, help='Show per-epoch progress bars')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def main(config_dir, samples, mode, epochs, seed, output, store, report, progress, verbose):
    """
    Train and persist the asteroid risk model.

    Examples:
        # Defaults from config/ (10k balanced samples, 150 epochs)
        python scripts/train_risk_model.py

        # Quick reproducible run
        python scripts/train_risk_model.py -n 2000 -e 20 --seed 7
    """
    if verbose:
        LogConfig.setup(log_level="DEBUG")

    config = Config(Path(config_dir))
    config.load_all()

    gen_cfg = config.generator
    train_cfg = config.training
    runtime_cfg = config.runtime

    num_samples = samples or gen_cfg.num_samples
    mode = mode or gen_cfg.mode
    seed = seed if seed is not None else gen_cfg.seed
    output = Path(output or runtime_cfg.artifact_dir)

    trainer_config = TrainerConfig.from_dict(train_cfg.model_dump())
    if epochs:
        trainer_config.epochs = epochs
    trainer_config.seed = seed
    trainer_config.show_progress = progress
    trainer_config.model_version = runtime_cfg.model_version

    click.echo("\n" + "="*60)
    click.echo("Asteroid Risk Model Training")
    click.echo("="*60)
    click.echo(f"Samples:       {num_samples} ({mode})")
    click.echo(f"Test split:    {gen_cfg.test_fraction:.0%}")
    click.echo(f"Epochs:        {trainer_config.epochs} (patience {trainer_config.patience})")
    click.echo(f"Batch size:    {trainer_config.batch_size}")
    click.echo(f"Output:        {output}")
    if seed is not None:
        click.echo(f"Random seed:   {seed}")
    click.echo("="*60 + "\n")

    try:
        generator = SyntheticDataGenerator(seed=seed)
        dataset = generator.generate_dataset(num_samples, mode)
        train_set, test_set = dataset.split(gen_cfg.test_fraction, seed=seed)
        click.echo(f"Training samples: {len(train_set)}, test samples: {len(test_set)}")

        trainer = RiskModelTrainer()
        artifact = trainer.train(train_set, trainer_config)
        evaluation = trainer.evaluate(artifact.model, test_set if len(test_set) else train_set)

        save_artifact(artifact, output)
        if store:
            model_store = LocalModelStore(runtime_cfg.store_path)
            try:
                model_store.put(runtime_cfg.store_key, artifact)
            finally:
                model_store.dispose()

        text = generate_performance_report(artifact, evaluation)
        click.echo("\n" + text)
        if report:
            Path(report).parent.mkdir(parents=True, exist_ok=True)
            Path(report).write_text(text)
            click.echo(f"Report written to: {report}")

        click.echo(f"\n✅ Model saved to: {output}")
        return 0

    except AstroRiskError as e:
        click.echo(f"\n❌ Error: {e}", err=True)
        logger.exception("Training failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
