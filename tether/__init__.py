"""
Tether - ephemeral, capability-keyed message relay sessions.

The relay service configures logging itself on startup (see
``tether.config.logging_config``). Used as a library, tether only
attaches a NullHandler to its own logger.
"""

import logging

logging.getLogger('tether').addHandler(logging.NullHandler())

# Version info
__version__ = '1.0.0'
