"""
landstack Command-Line Interface
================================

CLI commands for the land-cover stacking workflow.

Commands:
    train     - Run the full pipeline from a YAML config
    link      - Link survey points to raster features
    validate  - Re-validate persisted stacked rasters
    map       - Write the interactive sample map
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from loguru import logger

from landstack.config import PipelineConfig


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="INFO" if verbose else "WARNING")


def _load_config(config: str, output: str | None) -> PipelineConfig:
    cfg = PipelineConfig.from_yaml(config)
    if output is not None:
        cfg.output_dir = output
    return cfg


@click.group()
@click.version_option(package_name="landstack", message="%(prog)s %(version)s")
@click.option("--verbose", "-v", is_flag=True, help="Show progress logs")
def cli(verbose: bool):
    """landstack: stacked multilabel land-cover mapping."""
    _configure_logging(verbose)


@cli.command()
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default="configs/landstack.yaml",
    help="Path to configuration file",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Output directory (overrides output_dir in the config)",
)
def train(config: str, output: str | None):
    """Train every stage and validate the stacked rasters."""
    from landstack.pipeline import LandCoverPipeline

    cfg = _load_config(config, output)
    click.echo(f"Labels: {', '.join(cfg.labels)}  Learners: {', '.join(cfg.learners)}")

    report = LandCoverPipeline(cfg).run()

    click.echo("")
    click.echo("Validation AUC:")
    click.echo(report.auc_table().round(4).to_string())
    click.echo(f"\nArtifacts saved under {cfg.output_path}")


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), required=True, help="Path to configuration file")
@click.option(
    "--output", "-o",
    type=click.Path(),
    default="linked_samples.csv",
    help="Linked sample CSV to write",
)
def link(config: str, output: str):
    """Link survey points to raster features."""
    from landstack.data import RasterStack, link_samples, load_points

    cfg = _load_config(config, None)
    points = load_points(cfg.samples_path, cfg.labels, cfg.x_column, cfg.y_column)
    with RasterStack(cfg.raster_paths) as stack:
        samples = link_samples(
            points,
            stack,
            crs=cfg.sample_crs,
            feature_names=cfg.all_features(stack.band_names),
            label_names=cfg.labels,
            drop_outside=cfg.drop_outside_extent,
        )
    path = samples.to_csv(output)
    click.echo(f"Linked {len(samples)} of {len(points)} points -> {path}")


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), required=True, help="Path to configuration file")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output directory of a previous run")
def validate(config: str, output: str | None):
    """Recompute ROC/AUC from persisted rasters."""
    from landstack.pipeline import LandCoverPipeline

    cfg = _load_config(config, output)
    pipeline = LandCoverPipeline(cfg)
    pipeline.link()
    pipeline.resume_from_store()
    report = pipeline.validate()

    for result in report.for_stage("stacked"):
        click.echo(result.summary())
        click.echo("")


@cli.command(name="map")
@click.option("--config", "-c", type=click.Path(exists=True), required=True, help="Path to configuration file")
@click.option("--output", "-o", type=click.Path(), default="sample_map.html", help="HTML file to write")
@click.option("--label", "-l", type=str, default=None, help="Label used to colour points")
def map_command(config: str, output: str, label: str | None):
    """Write an interactive map of the linked survey points."""
    from landstack.data import RasterStack, link_samples, load_points
    from landstack.evaluation import sample_map

    cfg = _load_config(config, None)
    label = label or cfg.partition_label
    if label not in cfg.labels:
        raise click.BadParameter(f"'{label}' is not a configured label", param_hint="--label")

    points = load_points(cfg.samples_path, cfg.labels, cfg.x_column, cfg.y_column)
    with RasterStack(cfg.raster_paths) as stack:
        samples = link_samples(
            points, stack, crs=cfg.sample_crs,
            feature_names=cfg.all_features(stack.band_names),
            label_names=cfg.labels,
            drop_outside=cfg.drop_outside_extent,
        )
    path = sample_map(samples, output, label=label)
    click.echo(f"Map saved: {path}")


if __name__ == "__main__":
    cli()
