"""oidclogin -- Browser-based OpenID Connect login for desktop and CLI hosts.

This package walks a user through an identity provider's login page, captures
the redirect on a loopback listener, and turns it into an access token using
either the authorization-code flow (with PKCE) or the implicit flow. The
resulting session exposes the logged-in state, the access token, and the
user's claims to the host application.

Typical workflow::

    oidclogin config init --client-id my-app \\
        --discovery-url https://idp.example.com/.well-known/openid-configuration
    oidclogin login

Modules:
    auth: Session state and the login orchestrator.
    listener: Loopback redirect listener.
    providers: Authorization-code and implicit flow adapters, discovery.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration paths and client file I/O.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    events: Observer registration for login notifications.
    output: stdout/stderr formatting system with Rich support.
    app: Typer application and CLI entry point.
"""

__version__ = "0.1.0"
