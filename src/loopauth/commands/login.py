"""Login commands -- run the authorization-code flow.

Provides ``loopauth login``, which performs the interactive flow and prints
the access token to stdout, and ``loopauth url``, which only prints (or
decodes) an authorization URL without starting a listener.

Typical usage::

    export TOKEN=$(loopauth login --profile github)
    loopauth login --profile github --json > token.json
    loopauth url --profile github
"""

from __future__ import annotations

import os
from typing import Optional

import typer

from loopauth.exit_codes import EXIT_CONFIGURATION_ERROR
from loopauth.output import (
    error,
    format_response,
    get_output,
    info,
    print_data,
    success,
    suggest,
)


def login_command(
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile name to use."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="OAuth client ID (overrides the profile)."
    ),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Client secret source: env:VAR, file:/path, or prompt.",
    ),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Registered loopback redirect URI."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser callback."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the URL instead of opening a browser."
    ),
) -> None:
    """Log in through the browser and print the access token.

    Only the token (or, with ``--json``, the full token response) is written
    to stdout, so the command can be used in command substitution.

    Raises:
        typer.Exit: With the failing phase's exit code on any error.

    Example::

        loopauth login --profile github --scope read:user
    """
    from loopauth.browser import ManualLauncher, SystemBrowserLauncher
    from loopauth.config import resolve_flow_config
    from loopauth.exceptions import ConfigurationError
    from loopauth.flow import run_flow
    from loopauth.output import OutputFormat

    try:
        config = resolve_flow_config(
            profile_name=profile,
            client_id=client_id,
            client_secret_source=client_secret_source,
            redirect_uri=redirect_uri,
            scopes=scope,
            timeout=timeout,
        )
    except ConfigurationError as exc:
        error(str(exc))
        suggest("Create a profile: loopauth profile add <name> --client-id ...")
        raise typer.Exit(code=exc.exit_code) from None

    launcher = ManualLauncher() if no_browser else SystemBrowserLauncher()
    if not no_browser:
        info("Opening your browser to authorize this client...")
    info(f"Waiting for the callback on {config.redirect_uri} (timeout {config.timeout:g}s)")

    result = run_flow(config, launcher=launcher)
    if not result.ok:
        assert result.error is not None
        error(str(result.error))
        if result.error.phase == "browser":
            suggest("Retry with --no-browser and open the URL yourself.")
        elif result.error.phase == "callback":
            suggest("Run the command again and finish the sign-in in your browser.")
        raise typer.Exit(code=result.error.exit_code)

    token = result.unwrap()
    success("Authorization complete.")
    if get_output().format == OutputFormat.JSON:
        format_response(token.model_dump(exclude_none=True))
    else:
        print_data(token.access_token)


def url_command(
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile name to use."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="OAuth client ID (overrides the profile)."
    ),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Registered loopback redirect URI."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
    inspect: Optional[str] = typer.Option(
        None, "--inspect", help="Decode an existing authorization URL instead."
    ),
) -> None:
    """Print an authorization URL without starting a login.

    The ``state`` in the printed URL is random and will not be accepted by a
    later ``loopauth login``; this command is meant for checking what a
    profile sends to the provider.

    Example::

        loopauth url --profile github
        loopauth url --inspect "https://github.com/login/oauth/authorize?..."
    """
    from loopauth.authorize import build_authorization_url, parse_authorization_url
    from loopauth.config import ENV_CLIENT_ID, ENV_REDIRECT_URI, resolve_profile
    from loopauth.exceptions import ConfigurationError
    from loopauth.models import AuthorizationRequest, check_redirect_uri
    from loopauth.state import generate_state

    try:
        selected = resolve_profile(profile)
    except ConfigurationError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if inspect is not None:
        try:
            request = parse_authorization_url(inspect, scope_delimiter=selected.scope_delimiter)
        except ValueError as exc:
            error(str(exc))
            raise typer.Exit(code=EXIT_CONFIGURATION_ERROR) from None
        format_response(request.model_dump())
        return

    resolved_client_id = client_id or os.environ.get(ENV_CLIENT_ID) or selected.client_id
    if not resolved_client_id:
        error("No client ID configured (use --client-id or a profile)")
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR)

    resolved_redirect = redirect_uri or os.environ.get(ENV_REDIRECT_URI) or selected.redirect_uri
    try:
        check_redirect_uri(resolved_redirect)
    except ValueError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_CONFIGURATION_ERROR) from None

    request = AuthorizationRequest(
        client_id=resolved_client_id,
        redirect_uri=resolved_redirect,
        scopes=scope or selected.scopes,
        state=generate_state(),
    )
    print_data(
        build_authorization_url(
            selected.authorize_endpoint,
            request,
            scope_delimiter=selected.scope_delimiter,
            extra_params=selected.extra_authorize_params,
        )
    )
