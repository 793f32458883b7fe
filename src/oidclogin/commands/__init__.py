"""Built-in CLI sub-commands for oidclogin.

* :mod:`~oidclogin.commands.login` -- run a browser login, or print
  discovered provider endpoints.
* :mod:`~oidclogin.commands.config` -- create and inspect the client file.
"""
