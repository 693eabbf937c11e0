import sys

from grading_engine.cli import main

sys.exit(main())
