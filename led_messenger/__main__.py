"""Allow `python -m led_messenger`."""

import sys

from .cli import main

sys.exit(main())
