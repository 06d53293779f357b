"""SSL context construction for HTTPS connections to the API server.

Python's bundled certificates often lack corporate CA certificates, which
breaks self-hosted calendar servers behind an internal CA. truststore builds
an SSL context backed by the operating system's certificate store instead.
"""

import logging
import platform
import ssl
from typing import Optional

import truststore

logger = logging.getLogger(__name__)


def create_ssl_context(use_system_truststore: bool = True) -> Optional[ssl.SSLContext]:
    """
    Build the SSL context handed to aiohttp.

    Args:
        use_system_truststore: Verify against the OS certificate store

    Returns:
        An SSLContext, or None to let aiohttp use its default verification
    """
    if not use_system_truststore:
        logger.debug("System truststore disabled, using default SSL verification")
        return None

    ctx = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    logger.debug(f"Using {platform.system()} system truststore for SSL")
    return ctx
