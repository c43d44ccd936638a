"""
Entry point for running reel_flow as a module.

Usage:
    $ python -m reel_flow inspect flow.json
    $ python -m reel_flow play flow.json --visit-id demo
    $ python -m reel_flow collector --port 5000
    $ python -m reel_flow version
"""
from .main import run_cli

if __name__ == "__main__":
    run_cli()
