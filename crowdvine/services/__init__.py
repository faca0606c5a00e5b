"""Business services for CrowdVine."""
