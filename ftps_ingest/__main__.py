"""Allow ``python -m ftps_ingest``."""

import sys

from .cli import main

sys.exit(main())
