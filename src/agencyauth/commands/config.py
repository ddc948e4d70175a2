"""Config commands -- view and modify session settings.

Provides the ``agencyauth config`` sub-command group for reading, updating
and resetting the settings file
(:class:`~agencyauth.models.SessionSettings`). Settings control the API
base URL, the refresh threshold and interval, request timeouts, and the
endpoint paths.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from agencyauth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the settings stored on disk.

    Environment overrides are not applied here; this is the file as saved.

    Example::

        agencyauth config show
        agencyauth --json config show
    """
    from agencyauth.config import get_config_dir, load_settings

    settings = load_settings()
    info(f"Config directory: {get_config_dir()}")
    format_response(settings.model_dump(mode="json", by_alias=True))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Setting name, camelCase or snake_case (dot notation for endpoints)."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is validated against
    :class:`~agencyauth.models.SessionSettings` before saving, so
    ``refreshThresholdMinutes`` must be a number and so on.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value invalid.

    Example::

        agencyauth config set baseUrl https://api.agency.com/api/v1/
        agencyauth config set refreshThresholdMinutes 2
        agencyauth config set endpoints.login auth/login/
    """
    from agencyauth.config import load_settings, save_settings
    from agencyauth.models import SessionSettings

    settings = load_settings()
    data = settings.model_dump(mode="json", by_alias=True)

    # Navigate the dot-separated key path.
    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        k = _to_alias(k)
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = _to_alias(keys[-1])
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    target[final_key] = value

    try:
        new_settings = SessionSettings.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset settings to defaults.

    Asks for confirmation unless ``--force`` is given. Stored sessions are
    not touched.

    Example::

        agencyauth config reset --force
    """
    from agencyauth.config import save_settings
    from agencyauth.models import SessionSettings

    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_settings(SessionSettings())
    success("Settings reset to defaults.")


def _to_alias(name: str) -> str:
    """``refresh_threshold_minutes`` -> ``refreshThresholdMinutes``; camelCase passes through."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)
