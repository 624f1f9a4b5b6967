"""loopauth -- OAuth 2.0 authorization-code login from the command line.

This package performs a single interactive authorization-code exchange per
invocation: it opens the provider's consent page in the user's browser,
captures the redirect on a short-lived loopback listener, and trades the
authorization code for an access token server-to-server.

Typical usage::

    loopauth profile add github --client-id abc --client-secret-source env:GH_SECRET
    loopauth login --profile github

Or as a library::

    from loopauth.flow import run_flow

    result = run_flow(config)
    token = result.unwrap().access_token

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware profile storage and configuration precedence.
    flow: The end-to-end orchestrator.
    listener: The loopback callback listener.
    exchange: The token endpoint client.
    exceptions: Error taxonomy with exit-code mapping.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
