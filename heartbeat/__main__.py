#!/usr/bin/env python3
"""
Entry point for running the heartbeat renderer as a module.

Usage:
    python -m heartbeat [--tempo BPM] [--beats N] [--sample-rate HZ] ...
"""

from heartbeat.render import main

main()
