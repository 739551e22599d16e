"""Allow running as ``python -m stackfix``."""

import sys

from .main import main

sys.exit(main())
