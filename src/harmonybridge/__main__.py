import sys

from harmonybridge.cli import main

sys.exit(main())
