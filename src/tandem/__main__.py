"""Allow `python -m tandem` to launch the agent."""

import asyncio
import sys

from tandem.main import main

sys.exit(asyncio.run(main()))
