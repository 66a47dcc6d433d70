"""Command line interface for the liveness sidecar.

Example:
    $ csi-liveness --endpoint unix:///csi/csi.sock --metricsport 9808
"""

from csiliveness.cli.main import cli

__all__ = ["cli"]
