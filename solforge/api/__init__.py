"""SolForge HTTP API layer.

Usage
-----
Create and run the application::

    from solforge.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # webhook and bounty endpoints

"""

from solforge.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]
