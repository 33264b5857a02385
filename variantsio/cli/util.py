import json
import sys
from typing import Any, Dict, Iterable

import click


def parse_options(pairs: Iterable[str]) -> Dict[str, Any]:
    """Turn `name=value` pairs into variation options.  Values that parse as JSON are decoded."""
    options: Dict[str, Any] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"Expected name=value, got {pair!r}")
        try:
            options[name] = json.loads(value)
        except ValueError:
            options[name] = value
    return options


def exit_with(out: dict):
    if out.get("error"):
        click.secho(json.dumps(out, indent=2, sort_keys=True), fg="red")
        sys.exit(1)
    click.echo(json.dumps(out, indent=2, sort_keys=True))
    sys.exit(0)
