#!/usr/bin/env python3
"""Install the Chromium build Lighthouse drives through Playwright."""

import shutil
import subprocess
import sys


def main() -> int:
    """Install Playwright Chromium and report whether the Lighthouse CLI is on PATH."""
    print("Installing Playwright Chromium for Lighthouse audits...")

    try:
        subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            check=True,
        )
    except subprocess.CalledProcessError as e:
        print(f"Failed to install Playwright Chromium: {e}", file=sys.stderr)
        print("Retry manually with: playwright install chromium", file=sys.stderr)
        return 1
    except FileNotFoundError:
        print("Playwright not found. Install the package dependencies first.", file=sys.stderr)
        return 1

    print("Playwright Chromium installed.")
    if shutil.which("lighthouse") is None:
        # Only the lighthouse backend needs it; psi audits run remotely
        print(
            "Lighthouse CLI not found in PATH. Install it with: npm install -g lighthouse",
            file=sys.stderr,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
