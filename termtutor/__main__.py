import sys

from termtutor.cli import main

sys.exit(main())
