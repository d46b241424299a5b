"""Test package for the terminal chat client."""

import logging

logging.getLogger("asyncio").setLevel(logging.ERROR)
