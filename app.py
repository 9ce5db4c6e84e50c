#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Application entrypoint for NousGuard.

This file is intentionally minimal. It loads config, sets up logging and
boots the Textual UI app.
"""
from __future__ import annotations

import asyncio

from nousguard.config import configure_logging, load_config
from nousguard.ui import NousGuardApp


def main() -> None:
    """Run the Textual application."""
    cfg = load_config()
    configure_logging(str(cfg.get("log_level", "INFO")), log_file=str(cfg.get("log_file") or "") or None)
    asyncio.run(NousGuardApp(cfg).run_async())


if __name__ == "__main__":
    main()
