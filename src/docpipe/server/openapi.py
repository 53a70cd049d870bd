from litestar.openapi.config import OpenAPIConfig
from litestar.openapi.plugins import ScalarRenderPlugin

from docpipe.__about__ import __version__ as current_version
from docpipe.config import get_settings

settings = get_settings()
config = OpenAPIConfig(
    title=settings.app.NAME,
    version=current_version,
    use_handler_docstrings=True,
    render_plugins=[ScalarRenderPlugin()],
)
"""OpenAPI config for docpipe."""
