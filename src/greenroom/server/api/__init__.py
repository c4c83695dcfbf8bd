"""API route modules for the greenroom HTTP server."""

from greenroom.server.api.jobs import setup_job_routes

__all__ = ["setup_job_routes"]
