"""Allow ``python -m blobindex``."""

import sys

from blobindex.cli import main

sys.exit(main())
