#!/usr/bin/env python3
"""Run an ARQ worker for story or illustration generation.

Usage:
    python cli/run_worker.py story
    python cli/run_worker.py illustration
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from arq import run_worker

from photobook.worker import IllustrationWorkerSettings, StoryWorkerSettings

WORKER_SETTINGS = {
    "story": StoryWorkerSettings,
    "illustration": IllustrationWorkerSettings,
}


def main():
    """Run the selected ARQ worker."""
    parser = argparse.ArgumentParser(description="Run a photobook generation worker")
    parser.add_argument("kind", choices=sorted(WORKER_SETTINGS), help="Which queue to consume")
    args = parser.parse_args()

    run_worker(WORKER_SETTINGS[args.kind])


if __name__ == "__main__":
    main()
