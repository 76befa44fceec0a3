import sys

from campaign_engine.cli import main

sys.exit(main())
