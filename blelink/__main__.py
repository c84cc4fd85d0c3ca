"""Allow ``python -m blelink``."""

import sys

from blelink.cli import main

sys.exit(main())
