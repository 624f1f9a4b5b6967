"""Profile commands -- manage saved provider registrations.

Provides the ``loopauth profile`` sub-command group. A profile stores
everything ``loopauth login`` needs except the client secret itself; the
secret is referenced by a source descriptor (``env:VAR``, ``file:/path``
or ``prompt``) and resolved at login time.
"""

from __future__ import annotations

from typing import Optional

import typer

from loopauth.exit_codes import EXIT_CONFIGURATION_ERROR
from loopauth.output import error, format_response, info, print_table, success


profile_app = typer.Typer(no_args_is_help=True)

_SECRET_SOURCE_PREFIXES = ("env:", "file:")


def _parse_params(params: list[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            error(f"Expected KEY=VALUE for --param, got: {item}")
            raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
        parsed[key] = value
    return parsed


@profile_app.command("add")
def profile_add(
    name: str = typer.Argument(help="Profile name."),
    client_id: str = typer.Option(..., "--client-id", help="OAuth client ID."),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Where to read the secret: env:VAR, file:/path, or prompt.",
    ),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Loopback redirect URI registered with the provider."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Default scope (repeatable)."
    ),
    scope_delimiter: str = typer.Option(
        " ", "--scope-delimiter", help="Separator used to join scopes."
    ),
    authorize_endpoint: Optional[str] = typer.Option(
        None, "--authorize-endpoint", help="Provider authorization endpoint."
    ),
    token_endpoint: Optional[str] = typer.Option(
        None, "--token-endpoint", help="Provider token endpoint."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser callback."
    ),
    landing_url: Optional[str] = typer.Option(
        None, "--landing-url", help="Page shown in the browser after the callback."
    ),
    client_auth: str = typer.Option(
        "basic", "--client-auth", help="Client authentication: basic or post."
    ),
    param: Optional[list[str]] = typer.Option(
        None, "--param", help="Extra authorization parameter KEY=VALUE (repeatable)."
    ),
    overwrite: bool = typer.Option(
        False, "--overwrite", help="Replace an existing profile of the same name."
    ),
) -> None:
    """Save a provider registration as a named profile.

    Raises:
        typer.Exit: With code 2 if the profile already exists (without
            ``--overwrite``) or any value is invalid.

    Example::

        loopauth profile add github --client-id Iv1.abc \\
            --client-secret-source env:GITHUB_CLIENT_SECRET --scope read:user
    """
    from pydantic import ValidationError

    from loopauth.config import profile_exists, save_profile
    from loopauth.exceptions import ConfigurationError
    from loopauth.models import Profile, check_redirect_uri

    if client_secret_source is not None and not (
        client_secret_source == "prompt"
        or client_secret_source.startswith(_SECRET_SOURCE_PREFIXES)
    ):
        error(
            f"Unknown secret source '{client_secret_source}' "
            "(expected env:VAR, file:/path, or prompt)"
        )
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)

    fields: dict[str, object] = {
        "name": name,
        "client_id": client_id,
        "client_secret_source": client_secret_source,
        "scopes": scope or [],
        "scope_delimiter": scope_delimiter,
        "client_auth": client_auth,
        "extra_authorize_params": _parse_params(param or []),
    }
    for key, value in (
        ("redirect_uri", redirect_uri),
        ("authorize_endpoint", authorize_endpoint),
        ("token_endpoint", token_endpoint),
        ("timeout", timeout),
        ("landing_url", landing_url),
    ):
        if value is not None:
            fields[key] = value

    try:
        profile = Profile.model_validate(fields)
        check_redirect_uri(profile.redirect_uri)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors(include_input=False)
        )
        error(f"Invalid profile: {problems}")
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR) from None
    except ValueError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR) from None

    try:
        if profile_exists(name) and not overwrite:
            error(f"Profile '{name}' already exists (use --overwrite to replace it)")
            raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)
        path = save_profile(profile)
    except ConfigurationError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Saved profile '{name}' to {path}")
    if client_secret_source is None:
        info("No secret source set; login will read LOOPAUTH_CLIENT_SECRET.")


@profile_app.command("list")
def profile_list() -> None:
    """List saved profiles.

    Example::

        loopauth profile list
        loopauth profile list --json
    """
    from loopauth.config import list_profiles, load_profile
    from loopauth.exceptions import ConfigurationError

    names = list_profiles()
    if not names:
        info("No profiles saved. Create one with: loopauth profile add <name> --client-id ...")
        return

    rows: list[list[str]] = []
    for name in names:
        try:
            profile = load_profile(name)
        except ConfigurationError as exc:
            rows.append([name, "-", "-", f"invalid: {exc}"])
            continue
        rows.append(
            [
                name,
                profile.client_id or "-",
                profile.redirect_uri,
                " ".join(profile.scopes) or "-",
            ]
        )
    print_table(["name", "client_id", "redirect_uri", "scopes"], rows, title="Profiles")


@profile_app.command("show")
def profile_show(
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Show one profile's settings.

    The secret is never stored, so only its source descriptor is shown.
    """
    from loopauth.config import load_profile
    from loopauth.exceptions import ConfigurationError

    try:
        profile = load_profile(name)
    except ConfigurationError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    format_response(profile.model_dump(mode="json"))


@profile_app.command("remove")
def profile_remove(
    name: str = typer.Argument(help="Profile name."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete a saved profile.

    Example::

        loopauth profile remove github --force
    """
    from loopauth.config import delete_profile
    from loopauth.exceptions import ConfigurationError

    if not force:
        confirmed = typer.confirm(f"Remove profile '{name}'?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    try:
        delete_profile(name)
    except ConfigurationError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Removed profile '{name}'")
