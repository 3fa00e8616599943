import sys

from workfocus.interface.cli import main

sys.exit(main())
