"""Built-in CLI sub-commands for loopauth.

* :mod:`~loopauth.commands.login` -- ``login`` (run the flow) and ``url``
  (print or decode an authorization URL).
* :mod:`~loopauth.commands.profiles` -- the ``profile`` group for managing
  saved provider registrations.

Single commands are plain callback functions registered directly on the
root app; groups export a :class:`typer.Typer` sub-application.
"""
