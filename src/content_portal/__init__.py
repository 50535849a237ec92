"""n8n content portal.

Turns content briefs (scripts, images, sentiment analyses, short videos) into
n8n webhook calls, normalizes whatever the workflow sends back, and keeps a
history of the results. See `content_portal.api` for the HTTP surface and
`python -m content_portal --help` for the CLI.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
