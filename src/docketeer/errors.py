from __future__ import annotations

import click


class ConfigurationError(click.ClickException):
    """Invalid configuration detected before any subprocess is spawned."""
