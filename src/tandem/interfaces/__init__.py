"""
interfaces/ — Tandem user-facing front ends

    from tandem.interfaces.cli import run_cli
"""
