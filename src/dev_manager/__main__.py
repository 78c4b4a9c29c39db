import sys

from dev_manager.cli import main

sys.exit(main())
