"""Entry point for `python -m kubediag`.

Usage:
    python -m kubediag
"""

from __future__ import annotations

import asyncio

from kubediag.app import main

asyncio.run(main())
