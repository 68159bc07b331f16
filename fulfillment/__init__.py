"""fulfillment – on-demand delivery order intake, courier dispatch and order lifecycle."""

__version__ = "0.1.0"
