import sys

from uptime_goat.cli import main

sys.exit(main())
