# =============================================================================
# Hawk-Grab Entry Point for `python -m hawk_grab`
# =============================================================================
# This module allows Hawk-Grab to be run as a Python module:
#
#   python -m hawk_grab download
#
# This is equivalent to running the 'hawk-grab' command after installation.
# =============================================================================

import sys

from hawk_grab.app import main

if __name__ == "__main__":
    sys.exit(main())
