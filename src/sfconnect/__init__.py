"""sfconnect -- connect a CLI session to a Salesforce org with OAuth2 + PKCE.

The package runs the OAuth2 Authorization Code flow with PKCE against a
Salesforce-style identity provider, receives the redirect on a single-use
local listener, exchanges the code for tokens, and keeps the resulting
credentials in a local registry keyed by organization id.

Typical workflow::

    sfconnect connect org       # log in and store the org under "org"
    sfconnect list              # show connected environments

Modules:
    app: Typer application and CLI entry point.
    connect: Orchestrates a single connect handshake.
    environments: Registry merge semantics and file persistence.
    oauth: PKCE, authorize URL, callback listener and token exchange.
    models: Pydantic models shared across the package.
    config: Settings loading, data directory and atomic writes.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
