from litestar.plugins.structlog import StructlogPlugin
from litestar_granian import GranianPlugin
from litestar_saq import SAQPlugin

from docpipe.config import app as config

structlog = StructlogPlugin(config=config.log)
saq = SAQPlugin(config=config.saq)
granian = GranianPlugin()
