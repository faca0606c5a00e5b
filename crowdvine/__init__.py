"""CrowdVine: a members' wine club that fills shared pallets from producers."""

__version__ = "0.1.0"
