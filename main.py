#!/usr/bin/env python3
"""zonewalker main entry point.

Usage::

    python main.py walk arpa.
    python main.py walk arpa. --parallel 10 --rps 20
    python main.py walk example.com --start www.example.com
    python main.py version
    python main.py config
"""

from zonewalker.cli import main

if __name__ == "__main__":
    main()
