"""Allow `python -m taskpool` to run the demo batch."""

import sys

from taskpool.main import main

sys.exit(main())
