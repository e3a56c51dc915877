"""Convenience shim to run a single repository collection."""

from __future__ import annotations

import sys

from repo_activity.pipeline.runner import main as collection_main


if __name__ == "__main__":
    collection_main(sys.argv[1:])
