#!/usr/bin/env python3
"""
Cron entry point for the daily flyer run.
Equivalent to the `chirashi-scrape` console script, with the run lock.
"""
import sys

from chirashi.cli import locked_main

if __name__ == "__main__":
    sys.exit(locked_main())
