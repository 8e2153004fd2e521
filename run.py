#!/usr/bin/env python3
"""Convenience script to run the permission hook."""

import sys

from remote_relay.hooks.cli import permission_main


def main():
    sys.exit(permission_main())

if __name__ == "__main__":
    main()
