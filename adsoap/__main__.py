import sys

from adsoap.cli import main

sys.exit(main())
