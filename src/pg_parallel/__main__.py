import sys

from pg_parallel.cli import main

sys.exit(main())
